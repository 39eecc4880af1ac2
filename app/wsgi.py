from app.kmp import create_app

app = create_app()
