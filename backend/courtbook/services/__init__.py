# backend/courtbook/services/__init__.py
"""
Service layer: business logic on top of the repositories.
"""

from .base import BaseService

__all__ = ["BaseService"]
