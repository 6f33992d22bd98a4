from __future__ import annotations

import logging
from typing import Iterable
from uuid import uuid4

from mise.app.domain.errors import (
    CreationError,
    NotFoundError,
    PersistenceError,
    UpdateError,
    ValidationError,
)
from mise.app.infra.db.base import IngredientRepository
from mise.app.services.batching import DEFAULT_MAX_PARAMS_PER_STATEMENT, chunk_rows
from mise.services.persist_models import INGREDIENT_COLUMNS, IngredientRecord

logger = logging.getLogger(__name__)


def normalize_ingredient_name(name: str) -> str:
    """Catalog key for an ingredient: trimmed, single-spaced, lowercase."""
    return " ".join(name.split()).lower()


class IngredientCatalog:
    """Global, shared ingredient names. Rows are only added or merged, never owned."""

    def __init__(
        self,
        repository: IngredientRepository,
        max_params: int = DEFAULT_MAX_PARAMS_PER_STATEMENT,
    ) -> None:
        self._repository = repository
        self._max_params = max_params

    def _lookup(self, names: list[str]) -> dict[str, str]:
        found: dict[str, str] = {}
        # One bound parameter per name in the IN list.
        for batch in chunk_rows(names, 1, self._max_params):
            for ref in self._repository.find_by_names(batch):
                found[normalize_ingredient_name(ref.name)] = ref.id
        return found

    def resolve_or_create_ingredients(self, names: Iterable[str]) -> dict[str, str]:
        """
        Map each distinct normalized name to a catalog id, creating missing rows.

        Safe to call concurrently: inserts ignore name conflicts and any name
        that another writer created first is read back afterwards.
        """
        wanted = list(dict.fromkeys(
            normalized for normalized in (normalize_ingredient_name(name) for name in names) if normalized
        ))
        if not wanted:
            return {}

        resolved = self._lookup(wanted)
        missing = [name for name in wanted if name not in resolved]
        if missing:
            records = [IngredientRecord(id=str(uuid4()), name=name) for name in missing]
            for chunk in chunk_rows(records, INGREDIENT_COLUMNS, self._max_params):
                for ref in self._repository.insert_ingredients(chunk):
                    resolved[normalize_ingredient_name(ref.name)] = ref.id

            lost_race = [name for name in missing if name not in resolved]
            if lost_race:
                logger.info("Re-reading %d ingredients created concurrently", len(lost_race))
                resolved.update(self._lookup(lost_race))

            unresolved = [name for name in wanted if name not in resolved]
            if unresolved:
                raise CreationError(
                    "ingredient",
                    f"Failed to find or create ingredients: {', '.join(unresolved)}",
                )

            logger.info("Ingredient catalog: %d existing, %d created", len(wanted) - len(missing), len(missing))

        return {name: resolved[name] for name in wanted}

    def merge_ingredients(self, source_id: str, target_id: str) -> int:
        """Fold ``source_id`` into ``target_id`` and delete it. Returns moved reference count."""
        if source_id == target_id:
            raise ValidationError("ingredient", "Cannot merge ingredient with itself", field="target_id")

        try:
            if self._repository.get_by_id(source_id) is None:
                raise NotFoundError("ingredient", source_id, "Source ingredient not found")
            if self._repository.get_by_id(target_id) is None:
                raise NotFoundError("ingredient", target_id, "Target ingredient not found")

            moved = self._repository.move_recipe_links(source_id, target_id)
            self._repository.delete_ingredient(source_id)
        except (NotFoundError, ValidationError):
            raise
        except PersistenceError as error:
            raise UpdateError("ingredient", "Failed to merge ingredients", error) from error

        logger.info("Merged ingredient %s into %s: moved=%d", source_id, target_id, moved)
        return moved
