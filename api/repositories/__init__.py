"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL.
Repositories flush but never commit; the request-scoped session in
``core.database.get_db`` commits.
"""

from repositories.habit_repository import HabitRepository
from repositories.tag_repository import TagRepository
from repositories.utils import log_slow_query

__all__ = [
    "HabitRepository",
    "TagRepository",
    "log_slow_query",
]
