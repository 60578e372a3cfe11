"""
asgi.py -- Application assembly for the duneauth HTTP bridge.

The bridge has a single layer (api/), so this module only re-exports the app.
Keep the process entry point here so deployment config never has to change
when routers are added.

Run with:  uvicorn asgi:app --host 127.0.0.1 --port 8080
"""

from api.main import app

__all__ = ["app"]
