"""ORM models package exports."""

from presetlab.models.recipe import Recipe

__all__ = ["Recipe"]
