from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from mise.app.domain.errors import CreationError, DeletionError, QueryError, UpdateError
from mise.app.domain.models import ExistingRecipeSummary, IngredientRef
from mise.app.infra.db.base import IngredientRepository, RecipeRepository
from mise.services.persist_models import (
    IngredientRecord,
    RecipeIngredientRecord,
    RecipeRecord,
    RecipeStepRecord,
)

logger = logging.getLogger(__name__)

# Errors the supabase client surfaces for a failed statement or transport.
DB_ERRORS = (APIError, httpx.HTTPError, ConnectionError, TimeoutError)


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _row_to_summary(row: dict[str, Any]) -> ExistingRecipeSummary:
    return ExistingRecipeSummary(
        id=str(row["id"]),
        title=str(row.get("title") or ""),
        source_url=str(row.get("source_url") or ""),
        thumbnail_url=_safe_str(row.get("thumbnail_url")),
        created_at=_parse_datetime(row.get("created_at")),
    )


def _row_to_ingredient(row: dict[str, Any]) -> IngredientRef:
    return IngredientRef(id=str(row["id"]), name=str(row["name"]))


def create_supabase_client() -> Client:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(url, key)


class SupabaseRecipeRepository(RecipeRepository):
    RECIPES_TABLE = "recipes"
    STEPS_TABLE = "recipe_steps"
    LINKS_TABLE = "recipe_ingredients"

    def __init__(self, client: Client | None = None):
        self._client = client or create_supabase_client()

    def insert_recipe(self, record: RecipeRecord) -> None:
        try:
            result = self._client.table(self.RECIPES_TABLE).insert(record.model_dump()).execute()
        except DB_ERRORS as error:
            logger.error("Failed to insert recipe %s: %s", record.id, error)
            raise CreationError("recipe", "Failed to create recipe", error) from error

        if not result.data:
            raise CreationError("recipe", "Recipe insert returned no row")

    def insert_steps(self, rows: Sequence[RecipeStepRecord]) -> None:
        if not rows:
            return
        try:
            self._client.table(self.STEPS_TABLE).insert([row.model_dump() for row in rows]).execute()
        except DB_ERRORS as error:
            logger.error("Failed to insert %d recipe steps: %s", len(rows), error)
            raise CreationError("recipe_step", "Failed to create recipe steps", error) from error

    def insert_recipe_ingredients(self, rows: Sequence[RecipeIngredientRecord]) -> None:
        if not rows:
            return
        try:
            self._client.table(self.LINKS_TABLE).insert([row.model_dump() for row in rows]).execute()
        except DB_ERRORS as error:
            logger.error("Failed to insert %d recipe ingredients: %s", len(rows), error)
            raise CreationError("recipe_ingredient", "Failed to link recipe ingredients", error) from error

    def delete_recipe(self, recipe_id: str) -> None:
        try:
            self._client.table(self.RECIPES_TABLE).delete().eq("id", recipe_id).execute()
        except DB_ERRORS as error:
            logger.error("Failed to delete recipe %s: %s", recipe_id, error)
            raise DeletionError("recipe", "Failed to delete recipe", error) from error

    def get_recipe_owner(self, recipe_id: str) -> Optional[str]:
        try:
            result = (
                self._client.table(self.RECIPES_TABLE)
                .select("created_by_id")
                .eq("id", recipe_id)
                .limit(1)
                .execute()
            )
        except DB_ERRORS as error:
            raise QueryError("recipe", "Failed to get recipe", error) from error

        if not result.data:
            return None
        return str(result.data[0]["created_by_id"])

    def find_by_normalized_url(
        self,
        user_id: str,
        normalized_url: str,
    ) -> Optional[ExistingRecipeSummary]:
        try:
            result = (
                self._client.table(self.RECIPES_TABLE)
                .select("id, title, source_url, thumbnail_url, created_at")
                .eq("created_by_id", user_id)
                .eq("normalized_url", normalized_url)
                .limit(1)
                .execute()
            )
        except DB_ERRORS as error:
            logger.error("Failed to look up recipe by url for user %s: %s", user_id, error)
            raise QueryError("recipe", "Failed to check for existing recipe", error) from error

        if not result.data:
            return None
        return _row_to_summary(result.data[0])


class SupabaseIngredientRepository(IngredientRepository):
    TABLE_NAME = "ingredients"
    LINKS_TABLE = "recipe_ingredients"

    def __init__(self, client: Client | None = None):
        self._client = client or create_supabase_client()

    def find_by_names(self, names: Sequence[str]) -> list[IngredientRef]:
        if not names:
            return []
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select("id, name")
                .in_("name", list(names))
                .execute()
            )
        except DB_ERRORS as error:
            raise QueryError("ingredient", "Failed to get ingredients", error) from error
        return [_row_to_ingredient(row) for row in result.data or []]

    def insert_ingredients(self, rows: Sequence[IngredientRecord]) -> list[IngredientRef]:
        if not rows:
            return []
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .upsert(
                    [row.model_dump() for row in rows],
                    on_conflict="name",
                    ignore_duplicates=True,
                )
                .execute()
            )
        except DB_ERRORS as error:
            logger.error("Failed to insert %d ingredients: %s", len(rows), error)
            raise CreationError("ingredient", "Failed to create ingredients", error) from error
        return [_row_to_ingredient(row) for row in result.data or []]

    def get_by_id(self, ingredient_id: str) -> Optional[IngredientRef]:
        try:
            result = (
                self._client.table(self.TABLE_NAME)
                .select("id, name")
                .eq("id", ingredient_id)
                .limit(1)
                .execute()
            )
        except DB_ERRORS as error:
            raise QueryError("ingredient", "Failed to get ingredient", error) from error

        if not result.data:
            return None
        return _row_to_ingredient(result.data[0])

    def move_recipe_links(self, source_id: str, target_id: str) -> int:
        try:
            result = (
                self._client.table(self.LINKS_TABLE)
                .update({"ingredient_id": target_id})
                .eq("ingredient_id", source_id)
                .execute()
            )
        except DB_ERRORS as error:
            raise UpdateError("ingredient", "Failed to move ingredient references", error) from error
        return len(result.data or [])

    def delete_ingredient(self, ingredient_id: str) -> None:
        try:
            self._client.table(self.TABLE_NAME).delete().eq("id", ingredient_id).execute()
        except DB_ERRORS as error:
            raise DeletionError("ingredient", "Failed to delete ingredient", error) from error
