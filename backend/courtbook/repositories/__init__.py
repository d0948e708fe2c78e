# backend/courtbook/repositories/__init__.py
"""
Repository layer: all SQL lives here, services only see models.
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "RepositoryFactory"]
