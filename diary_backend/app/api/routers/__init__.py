"""Router exports for FastAPI composition."""

from . import entries, health

__all__ = ["entries", "health"]
