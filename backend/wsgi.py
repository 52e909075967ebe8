# backend/wsgi.py
from canteen import create_app

app = create_app()
