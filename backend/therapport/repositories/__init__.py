"""Data access layer. Services obtain repositories through ``RepositoryFactory``."""

from .base_repository import BaseRepository, IRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "IRepository", "RepositoryFactory"]
