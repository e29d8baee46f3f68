"""
WSGI entry point for the Employee Journey Engine.

Usage:
    gunicorn wsgi:app
    flask --app wsgi run-job journey_overdue_reminder
    flask --app wsgi db upgrade
"""

from app import create_app

app = create_app()
