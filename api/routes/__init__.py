"""API route modules."""

from routes.habit_tags_routes import router as habit_tags_router
from routes.habits_routes import router as habits_router
from routes.health_routes import router as health_router
from routes.tags_routes import router as tags_router

__all__ = [
    "habit_tags_router",
    "habits_router",
    "health_router",
    "tags_router",
]
