from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class ExtractRequest(BaseModel):
    url: str = Field(min_length=1)


class IngredientItem(BaseModel):
    name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


class RecipeStep(BaseModel):
    stepNumber: int = Field(ge=1)
    instruction: str
    timestampSeconds: Optional[int] = Field(default=None, ge=0)
    durationSeconds: Optional[int] = Field(default=None, ge=0)


class ExtractedRecipePayload(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    servings: Optional[int] = None
    prepTimeMinutes: Optional[int] = None
    cookTimeMinutes: Optional[int] = None
    calories: Optional[int] = None
    protein: Optional[int] = None
    carbs: Optional[int] = None
    fat: Optional[int] = None
    fiber: Optional[int] = None
    ingredients: list[IngredientItem] = Field(default_factory=list)
    steps: list[RecipeStep] = Field(default_factory=list)


class RecipeSource(BaseModel):
    sourceUrl: str
    sourceType: Literal["youtube", "blog"]
    youtubeVideoId: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    author: Optional[str] = None


class ExistingRecipe(BaseModel):
    id: str
    title: str
    sourceUrl: str
    thumbnailUrl: Optional[str] = None
    createdAt: Optional[str] = None


class ExtractResponse(BaseModel):
    """Either a fresh preview (``recipe`` + ``source``) or the user's saved copy (``existing``)."""

    status: Literal["extracted", "existing"]
    recipe: Optional[ExtractedRecipePayload] = None
    source: Optional[RecipeSource] = None
    existing: Optional[ExistingRecipe] = None
    warnings: list[str] = Field(default_factory=list)


class SaveRecipeRequest(BaseModel):
    recipe: ExtractedRecipePayload
    source: RecipeSource


class SaveRecipeResponse(BaseModel):
    status: Literal["created", "existing"]
    recipeId: str
