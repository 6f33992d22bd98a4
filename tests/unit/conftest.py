from __future__ import annotations

from typing import Optional, Sequence

import pytest

from mise.app.domain.errors import CreationError
from mise.app.domain.models import ExistingRecipeSummary, IngredientRef
from mise.app.infra.db.base import IngredientRepository, RecipeRepository
from mise.services.persist_models import (
    IngredientRecord,
    RecipeIngredientRecord,
    RecipeRecord,
    RecipeStepRecord,
)


class InMemoryRecipeRepository(RecipeRepository):
    def __init__(self) -> None:
        self.recipes: dict[str, RecipeRecord] = {}
        self.steps: list[RecipeStepRecord] = []
        self.links: list[RecipeIngredientRecord] = []
        self.statements: list[tuple[str, int]] = []
        self.fail_on: Optional[str] = None
        self.lookups: list[tuple[str, str]] = []

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise CreationError(operation, f"Simulated failure in {operation}")

    def insert_recipe(self, record: RecipeRecord) -> None:
        self._maybe_fail("insert_recipe")
        self.statements.append(("recipes", 1))
        self.recipes[record.id] = record

    def insert_steps(self, rows: Sequence[RecipeStepRecord]) -> None:
        self._maybe_fail("insert_steps")
        self.statements.append(("recipe_steps", len(rows)))
        self.steps.extend(rows)

    def insert_recipe_ingredients(self, rows: Sequence[RecipeIngredientRecord]) -> None:
        self._maybe_fail("insert_recipe_ingredients")
        self.statements.append(("recipe_ingredients", len(rows)))
        self.links.extend(rows)

    def delete_recipe(self, recipe_id: str) -> None:
        self.recipes.pop(recipe_id, None)
        self.steps[:] = [row for row in self.steps if row.recipe_id != recipe_id]
        self.links[:] = [row for row in self.links if row.recipe_id != recipe_id]

    def get_recipe_owner(self, recipe_id: str) -> Optional[str]:
        record = self.recipes.get(recipe_id)
        return record.created_by_id if record else None

    def find_by_normalized_url(self, user_id: str, normalized_url: str) -> Optional[ExistingRecipeSummary]:
        self.lookups.append((user_id, normalized_url))
        for record in self.recipes.values():
            if record.created_by_id == user_id and record.normalized_url == normalized_url:
                return ExistingRecipeSummary(
                    id=record.id,
                    title=record.title,
                    source_url=record.source_url,
                    thumbnail_url=record.thumbnail_url,
                )
        return None


class InMemoryIngredientRepository(IngredientRepository):
    def __init__(self, links: Optional[list[RecipeIngredientRecord]] = None) -> None:
        self.rows: dict[str, IngredientRef] = {}
        self.links = links if links is not None else []
        self.lookup_calls: list[list[str]] = []
        self.insert_calls: list[int] = []
        # Names another writer creates between our lookup and our insert.
        self.created_concurrently: set[str] = set()

    def add(self, ingredient_id: str, name: str) -> IngredientRef:
        ref = IngredientRef(id=ingredient_id, name=name)
        self.rows[name] = ref
        return ref

    def find_by_names(self, names: Sequence[str]) -> list[IngredientRef]:
        self.lookup_calls.append(list(names))
        return [self.rows[name] for name in names if name in self.rows]

    def insert_ingredients(self, rows: Sequence[IngredientRecord]) -> list[IngredientRef]:
        self.insert_calls.append(len(rows))
        for name in sorted(self.created_concurrently):
            if name not in self.rows:
                self.add(f"other-{name}", name)

        inserted = []
        for row in rows:
            if row.name in self.rows:
                continue
            inserted.append(self.add(row.id, row.name))
        return inserted

    def get_by_id(self, ingredient_id: str) -> Optional[IngredientRef]:
        return next((ref for ref in self.rows.values() if ref.id == ingredient_id), None)

    def move_recipe_links(self, source_id: str, target_id: str) -> int:
        moved = 0
        for link in self.links:
            if link.ingredient_id == source_id:
                link.ingredient_id = target_id
                moved += 1
        return moved

    def delete_ingredient(self, ingredient_id: str) -> None:
        self.rows = {name: ref for name, ref in self.rows.items() if ref.id != ingredient_id}


@pytest.fixture
def recipe_repo() -> InMemoryRecipeRepository:
    return InMemoryRecipeRepository()


@pytest.fixture
def ingredient_repo(recipe_repo: InMemoryRecipeRepository) -> InMemoryIngredientRepository:
    return InMemoryIngredientRepository(links=recipe_repo.links)
