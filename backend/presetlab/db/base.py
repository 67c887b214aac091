"""SQLAlchemy metadata registry import for Alembic."""

from presetlab.models import Recipe
from presetlab.models.base import Base

__all__ = ["Base", "Recipe"]
