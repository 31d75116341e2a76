"""
Feature modules live under this package.

Each module owns its models/routes/service, and reuses the platform
primitives (identity, access policy, audit, DB session).
"""
