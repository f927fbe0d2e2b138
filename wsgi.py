"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from taskflow import create_app

app = create_app()

store = app.extensions["datastore"]
store.connect()
store.install_signal_handlers()
