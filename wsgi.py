"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi classify-iteration 15 3
    flask --app wsgi db init       # first time only (creates migrations/)
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from pireport import create_app

app = create_app()
