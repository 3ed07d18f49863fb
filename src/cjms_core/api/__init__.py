"""CJMS HTTP facade."""
from .auth import require_password
from .routes import router

__all__ = ["require_password", "router"]
