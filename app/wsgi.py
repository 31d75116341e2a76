from app.tnr import create_app

app = create_app()
