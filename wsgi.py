"""WSGI entry point: gunicorn -c gunicorn.conf.py wsgi:application"""
import os
from app import create_app

# Fails at startup when BACKEND_URL or BACKEND_API_KEY is missing
application = create_app(os.environ.get('LOCAUTO_ENV', 'production'))
