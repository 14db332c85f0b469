"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.catalog_import import router as catalog_import_router

__all__ = [
    "catalog_import_router",
]
