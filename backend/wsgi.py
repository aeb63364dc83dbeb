"""WSGI entry point (gunicorn ``backend.wsgi:app``, serverless runtimes)."""

from backend.main import create_app

app = create_app()
