"""Repository package re-exports for easy imports from `src.marketplace.repositories`."""
from .base import Repository, Repositories, UniqueKey
from .memory import MemoryRepository, MemoryRepositories
from .sql import SqlRepository, SqlRepositories

__all__ = [
    "Repository",
    "Repositories",
    "UniqueKey",
    "MemoryRepository",
    "MemoryRepositories",
    "SqlRepository",
    "SqlRepositories",
]
