"""REST API layer for kubevigil.

Exposes:
    create_app -- FastAPI application factory.
"""

from kubevigil.api.app import create_app

__all__ = ["create_app"]
