"""
WSGI entry point for ProcessFlow.

Usage:
    gunicorn wsgi:app                    # APP_ENV selects the config
    flask --app wsgi seed-demo --reset   # demo tenant
    flask --app wsgi run-job overdue_scanner
    flask --app wsgi db init             # Alembic migrations via Flask-Migrate
"""

from app import create_app

app = create_app()
