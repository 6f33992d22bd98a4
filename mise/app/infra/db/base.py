# mise/app/infra/db/base.py
"""
Abstract base classes for the recipe store.
Services depend on these interfaces so tests can swap in in-memory fakes.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from mise.app.domain.models import ExistingRecipeSummary, IngredientRef
from mise.services.persist_models import (
    IngredientRecord,
    RecipeIngredientRecord,
    RecipeRecord,
    RecipeStepRecord,
)


class RecipeRepository(ABC):
    """
    Abstract interface for recipe rows and their children.

    Implementations:
    - SupabaseRecipeRepository: Postgres tables through PostgREST
    """

    @abstractmethod
    def insert_recipe(self, record: RecipeRecord) -> None:
        """Insert the recipe row. Raises CreationError on failure."""
        pass

    @abstractmethod
    def insert_steps(self, rows: Sequence[RecipeStepRecord]) -> None:
        """
        Insert step rows as a single statement.

        Callers are responsible for keeping ``len(rows)`` within the
        parameter ceiling.
        """
        pass

    @abstractmethod
    def insert_recipe_ingredients(self, rows: Sequence[RecipeIngredientRecord]) -> None:
        """Insert join rows as a single statement."""
        pass

    @abstractmethod
    def delete_recipe(self, recipe_id: str) -> None:
        """Delete a recipe; steps and join rows go with it (ON DELETE CASCADE)."""
        pass

    @abstractmethod
    def get_recipe_owner(self, recipe_id: str) -> Optional[str]:
        """
        Return the ``created_by_id`` of a recipe.

        Returns:
            The owner's user id, or None if the recipe does not exist
        """
        pass

    @abstractmethod
    def find_by_normalized_url(
        self,
        user_id: str,
        normalized_url: str,
    ) -> Optional[ExistingRecipeSummary]:
        """
        Look up a recipe this user already saved from the same source.

        Args:
            user_id: Owner scope; other users' recipes never match
            normalized_url: Output of ``normalize_url``

        Returns:
            Summary of the matching recipe, or None
        """
        pass


class IngredientRepository(ABC):
    """Abstract interface for the global ingredient catalog."""

    @abstractmethod
    def find_by_names(self, names: Sequence[str]) -> list[IngredientRef]:
        """Fetch catalog rows whose name is in ``names`` (one query)."""
        pass

    @abstractmethod
    def insert_ingredients(self, rows: Sequence[IngredientRecord]) -> list[IngredientRef]:
        """
        Insert catalog rows, ignoring names that already exist.

        Returns:
            Only the rows this call actually inserted
        """
        pass

    @abstractmethod
    def get_by_id(self, ingredient_id: str) -> Optional[IngredientRef]:
        pass

    @abstractmethod
    def move_recipe_links(self, source_id: str, target_id: str) -> int:
        """
        Repoint every recipe_ingredients row from ``source_id`` to ``target_id``.

        Returns:
            Number of join rows moved
        """
        pass

    @abstractmethod
    def delete_ingredient(self, ingredient_id: str) -> None:
        pass
