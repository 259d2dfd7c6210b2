# backend/wsgi.py
from loyalpos import create_app

app = create_app()
