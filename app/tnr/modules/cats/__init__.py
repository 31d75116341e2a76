"""
Cats module: the cat record store and its status history ledger.

- Every cat carries exactly one current status (NOT_TNRED/TNRED/RESCUED/DECEASED/MISSING)
- Each status change appends one immutable history entry in the same transaction
- Registration writes the first entry (old status NULL)
"""
