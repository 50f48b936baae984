# backend/wsgi.py
from spa_registry import create_app

app = create_app()
