"""
API Layer - HTTP interface for the photo hunt client.

Components:
- schemas: Pydantic request/response models (camelCase wire format)
- service: Framework-agnostic service over the pipeline and accounts
- app: FastAPI application factory
"""

from .service import APIService, bearer_token

__all__ = ["APIService", "bearer_token", "create_app"]


def create_app(*args, **kwargs):
    """Create the FastAPI app (imports FastAPI lazily)."""
    from .app import create_app as _create_app
    return _create_app(*args, **kwargs)
