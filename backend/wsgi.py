# backend/wsgi.py
from airctt import create_app

app = create_app()
