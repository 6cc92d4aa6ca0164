from app.sitehost import create_app

app = create_app()
