"""Persistence of locked component records."""

from .store import ComponentStore

__all__ = ["ComponentStore"]
