"""Shared service foundation."""

from .base_service import BaseService

__all__ = ["BaseService"]
