"""Routes package for FastAPI endpoints.

This package contains all API route modules for the automated survey service.
"""

from app.routes import health, results, survey

__all__ = ["health", "results", "survey"]
