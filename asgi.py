"""
asgi.py -- Application assembly for the account service.

Process managers and uvicorn import the app from here so the import path
stays stable even if api/main.py grows sibling entry points.

Run with:  uvicorn asgi:app --reload
           python main.py
"""

from api.main import app

__all__ = ["app"]
