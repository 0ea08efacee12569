"""
asgi.py -- ASGI entry point for SecureAPI.

Run with:  uvicorn asgi:app --reload

Importing api.main reads configuration; a missing or short SECRET_KEY stops
the process here with ConfigError.
"""

from api.main import app

__all__ = ["app"]
