from app.hosting import create_app

app = create_app()
