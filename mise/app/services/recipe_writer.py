# mise/app/services/recipe_writer.py
"""
Deduplication gate and persistence writer for extracted recipes.

A recipe is written as one logical unit: the recipe row, its steps, catalog
lookups for its ingredients, then the join rows. Every multi-row insert is
split so that no statement binds more than ``max_params`` parameters. When a
later stage fails the recipe row is deleted again, which cascades to anything
already written under it.
"""
from __future__ import annotations

import logging
import time
from typing import Optional
from uuid import uuid4

from mise.app.domain.errors import (
    CreationError,
    DeletionError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    QueryError,
    ValidationError,
)
from mise.app.domain.models import ExistingRecipeSummary, RecipeCreated
from mise.app.infra.db.base import RecipeRepository
from mise.app.services.batching import DEFAULT_MAX_PARAMS_PER_STATEMENT, chunk_rows
from mise.app.services.ingredient_catalog import IngredientCatalog, normalize_ingredient_name
from mise.services.ids import normalize_url
from mise.services.persist_models import (
    RECIPE_INGREDIENT_COLUMNS,
    STEP_COLUMNS,
    RecipeIngredientRecord,
    RecipeRecord,
    RecipeStepRecord,
)
from mise.services.types import ExtractedRecipe, SourceMeta

logger = logging.getLogger(__name__)

__all__ = [
    "DeduplicationGate",
    "RecipePersistenceWriter",
    "chunk_rows",
    "normalize_ingredient_name",
]


class DeduplicationGate:
    def __init__(self, recipes: RecipeRepository) -> None:
        self._recipes = recipes

    def find_existing(self, user_id: str, source_url: str) -> Optional[ExistingRecipeSummary]:
        """Return the user's recipe already saved from this URL, if any.

        URLs are compared after ``normalize_url``; only ``user_id``'s recipes
        are considered.
        """
        normalized = normalize_url(source_url)
        try:
            existing = self._recipes.find_by_normalized_url(user_id, normalized)
        except PersistenceError:
            raise
        except Exception as error:
            raise QueryError("recipe", "Failed to check for existing recipe", error) from error

        if existing is not None:
            logger.info("Duplicate recipe found: user=%s recipe=%s url=%s", user_id, existing.id, normalized)
        return existing


class RecipePersistenceWriter:
    def __init__(
        self,
        recipes: RecipeRepository,
        catalog: IngredientCatalog,
        max_params: int = DEFAULT_MAX_PARAMS_PER_STATEMENT,
    ) -> None:
        self._recipes = recipes
        self._catalog = catalog
        self._max_params = max_params

    def _build_recipe_record(
        self,
        recipe_id: str,
        user_id: str,
        extracted: ExtractedRecipe,
        source: SourceMeta,
    ) -> RecipeRecord:
        return RecipeRecord(
            id=recipe_id,
            created_by_id=user_id,
            title=extracted.title,
            description=extracted.description,
            source_url=source.source_url,
            normalized_url=normalize_url(source.source_url),
            source_type=source.source_type,
            youtube_video_id=source.youtube_video_id,
            thumbnail_url=source.thumbnail_url,
            servings=extracted.servings,
            prep_time_minutes=extracted.prep_time_minutes,
            cook_time_minutes=extracted.cook_time_minutes,
            calories=extracted.calories,
            protein=extracted.protein,
            carbs=extracted.carbs,
            fat=extracted.fat,
            fiber=extracted.fiber,
        )

    def _write_steps(self, recipe_id: str, extracted: ExtractedRecipe) -> None:
        rows = [
            RecipeStepRecord(
                id=str(uuid4()),
                recipe_id=recipe_id,
                step_number=step.step_number,
                instruction=step.instruction,
                timestamp_seconds=step.timestamp_seconds,
                duration_seconds=step.duration_seconds,
            )
            for step in extracted.steps
        ]
        for chunk in chunk_rows(rows, STEP_COLUMNS, self._max_params):
            self._recipes.insert_steps(chunk)

    def _write_ingredients(self, recipe_id: str, extracted: ExtractedRecipe) -> None:
        if not extracted.ingredients:
            return

        ids_by_name = self._catalog.resolve_or_create_ingredients(item.name for item in extracted.ingredients)

        rows = []
        for item in extracted.ingredients:
            ingredient_id = ids_by_name.get(normalize_ingredient_name(item.name))
            if ingredient_id is None:
                raise CreationError("recipe_ingredient", f"No catalog entry for ingredient: {item.name}")
            rows.append(
                RecipeIngredientRecord(
                    id=str(uuid4()),
                    recipe_id=recipe_id,
                    ingredient_id=ingredient_id,
                    quantity=item.quantity,
                    unit=item.unit,
                    notes=item.notes,
                )
            )

        for chunk in chunk_rows(rows, RECIPE_INGREDIENT_COLUMNS, self._max_params):
            self._recipes.insert_recipe_ingredients(chunk)

    def _compensate(self, recipe_id: str) -> None:
        try:
            self._recipes.delete_recipe(recipe_id)
            logger.info("Rolled back partially written recipe %s", recipe_id)
        except Exception:
            logger.exception("Rollback of recipe %s failed; orphaned rows may remain", recipe_id)

    def create(self, user_id: str, extracted: ExtractedRecipe, source: SourceMeta) -> RecipeCreated:
        started = time.perf_counter()
        recipe_id = str(uuid4())
        record = self._build_recipe_record(recipe_id, user_id, extracted, source)

        recipe_written = False
        try:
            self._recipes.insert_recipe(record)
            recipe_written = True
            self._write_steps(recipe_id, extracted)
            self._write_ingredients(recipe_id, extracted)
        except Exception as error:
            logger.error("Failed to persist recipe %s for user %s: %s", recipe_id, user_id, error)
            if recipe_written:
                self._compensate(recipe_id)
            if isinstance(error, PersistenceError):
                raise
            raise CreationError("recipe", "Failed to create recipe", error) from error

        logger.info(
            "Recipe persisted: id=%s user=%s steps=%d ingredients=%d duration_ms=%d",
            recipe_id,
            user_id,
            len(extracted.steps),
            len(extracted.ingredients),
            (time.perf_counter() - started) * 1000,
        )
        return RecipeCreated(recipe_id=recipe_id)

    def delete(self, user_id: str, recipe_id: str) -> None:
        try:
            owner = self._recipes.get_recipe_owner(recipe_id)
            if owner is None:
                raise NotFoundError("recipe", recipe_id)
            if owner != user_id:
                raise PermissionDeniedError(
                    "recipe",
                    "You don't have permission to delete this recipe",
                    field="created_by_id",
                )
            self._recipes.delete_recipe(recipe_id)
        except (NotFoundError, ValidationError, DeletionError):
            raise
        except Exception as error:
            raise DeletionError("recipe", "Failed to delete recipe", error) from error

        logger.info("Recipe deleted: id=%s user=%s", recipe_id, user_id)
