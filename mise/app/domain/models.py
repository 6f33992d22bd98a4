# mise/app/domain/models.py
"""
Domain models returned by the persistence layer.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ExistingRecipeSummary:
    """A recipe the user already saved from the same normalized URL."""
    id: str
    title: str
    source_url: str
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "id": self.id,
            "title": self.title,
            "sourceUrl": self.source_url,
            "thumbnailUrl": self.thumbnail_url,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class RecipeCreated:
    recipe_id: str


@dataclass(frozen=True)
class IngredientRef:
    id: str
    name: str
