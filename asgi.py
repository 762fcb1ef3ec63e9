"""
asgi.py -- ASGI entry point for ProfileHub.

Builds the application from the process-wide settings. Library modules
receive Settings explicitly through create_app().

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
