# mise/services/persist_models.py
from typing import Literal, Optional

from pydantic import BaseModel

SourceType = Literal["youtube", "blog"]


class RecipeRecord(BaseModel):
    id: str
    created_by_id: str
    title: str
    description: Optional[str] = None
    source_url: str
    normalized_url: str
    source_type: SourceType
    youtube_video_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    servings: Optional[int] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    calories: Optional[int] = None
    protein: Optional[int] = None
    carbs: Optional[int] = None
    fat: Optional[int] = None
    fiber: Optional[int] = None


class RecipeStepRecord(BaseModel):
    id: str
    recipe_id: str
    step_number: int
    instruction: str
    timestamp_seconds: Optional[int] = None
    duration_seconds: Optional[int] = None


class IngredientRecord(BaseModel):
    id: str
    name: str
    category: Optional[str] = None


class RecipeIngredientRecord(BaseModel):
    id: str
    recipe_id: str
    ingredient_id: str
    quantity: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


# Bound parameters per row, used to size multi-row inserts.
STEP_COLUMNS = len(RecipeStepRecord.model_fields)
INGREDIENT_COLUMNS = len(IngredientRecord.model_fields)
RECIPE_INGREDIENT_COLUMNS = len(RecipeIngredientRecord.model_fields)
