from app.practice import create_app

app = create_app()
