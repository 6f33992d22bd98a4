"""
Recipe extraction through the language model.

``extract_recipe`` is the single entry point for both source shapes:

* ``TextSource``: a timestamped transcript or blog text, sent as a prompt.
* ``NativeVideoSource``: a watch URL the model processes directly.

Whatever comes back goes through ``normalize_recipe`` so callers always get
the same ``ExtractedRecipe`` shape.
"""
from __future__ import annotations

import json
import logging
import math
import re
import time
from dataclasses import replace
from typing import Any, Optional, Protocol

from mise.services.errors import ExtractionError, ServiceError
from mise.services.types import (
    ExtractedIngredient,
    ExtractedRecipe,
    ExtractedStep,
    ExtractionSource,
    NativeVideoSource,
    SourceType,
    TextSource,
)

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

_CONTEXT_LINES = {
    "youtube": "This is a YouTube video transcript with timestamps. Extract video timestamps for each step.",
    "blog": "This is content from a food blog. Focus on extracting the recipe from any surrounding text.",
}


class RecipeModel(Protocol):
    async def generate_from_text(self, prompt: str) -> str: ...

    async def generate_from_video(self, video_url: str) -> str: ...


def build_text_prompt(source: TextSource) -> str:
    lines = [f"SOURCE TYPE: {source.source_type}", _CONTEXT_LINES[source.source_type]]
    if source.title:
        lines.append(f"VIDEO/PAGE TITLE: {source.title}")
    if source.author:
        lines.append(f"CHANNEL/AUTHOR: {source.author}")
    lines.append("")
    lines.append("CONTENT TO EXTRACT FROM:")
    lines.append(source.content)
    return "\n".join(lines)


def parse_model_json(text: str) -> Any:
    stripped = text.strip()
    fenced = CODE_FENCE_PATTERN.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        return json.loads(stripped)
    except ValueError as error:
        raise ExtractionError(f"Model response is not valid JSON: {error}") from error


def _to_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = round(value)
    if not isinstance(value, int) or value < 0:
        return None
    return value


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _normalize_ingredient(raw: Any) -> Optional[ExtractedIngredient]:
    if not isinstance(raw, dict):
        return None
    name = _to_text(raw.get("name"))
    if not name:
        return None
    return ExtractedIngredient(
        name=name,
        quantity=_to_text(raw.get("quantity")),
        unit=_to_text(raw.get("unit")),
        notes=_to_text(raw.get("notes")),
    )


def _normalize_steps(raw_steps: list, source_type: SourceType) -> tuple[ExtractedStep, ...]:
    candidates: list[tuple[float, str, Optional[int], Optional[int]]] = []
    for raw in raw_steps:
        if not isinstance(raw, dict):
            continue
        instruction = _to_text(raw.get("instruction"))
        if not instruction:
            continue
        number = _to_int(raw.get("stepNumber"))
        if source_type == "blog":
            timestamp = duration = None
        else:
            timestamp = _to_int(raw.get("timestampSeconds"))
            duration = _to_int(raw.get("durationSeconds"))
        candidates.append((math.inf if number is None else number, instruction, timestamp, duration))

    # sorted() is stable, so equal or missing step numbers keep the model's order.
    ordered = sorted(candidates, key=lambda candidate: candidate[0])
    return tuple(
        ExtractedStep(
            step_number=index,
            instruction=instruction,
            timestamp_seconds=timestamp,
            duration_seconds=duration,
        )
        for index, (_, instruction, timestamp, duration) in enumerate(ordered, start=1)
    )


def normalize_recipe(payload: Any, source_type: SourceType) -> ExtractedRecipe:
    """Coerce a raw model payload into an ``ExtractedRecipe``.

    Optional scalars become ``None`` when absent or unusable, numbers are
    coerced to non-negative ints, list fields default to empty, and steps are
    renumbered 1..n. Blog recipes never carry timestamps.
    """
    if not isinstance(payload, dict):
        raise ExtractionError("Model response is not a JSON object.")

    title = _to_text(payload.get("title"))
    if not title:
        raise ExtractionError("Model response is missing a recipe title.")

    ingredients = tuple(
        ingredient
        for ingredient in (_normalize_ingredient(raw) for raw in _as_list(payload.get("ingredients")))
        if ingredient is not None
    )

    return ExtractedRecipe(
        title=title,
        description=_to_text(payload.get("description")),
        servings=_to_int(payload.get("servings")),
        prep_time_minutes=_to_int(payload.get("prepTimeMinutes")),
        cook_time_minutes=_to_int(payload.get("cookTimeMinutes")),
        calories=_to_int(payload.get("calories")),
        protein=_to_int(payload.get("protein")),
        carbs=_to_int(payload.get("carbs")),
        fat=_to_int(payload.get("fat")),
        fiber=_to_int(payload.get("fiber")),
        ingredients=ingredients,
        steps=_normalize_steps(_as_list(payload.get("steps")), source_type),
    )


def drop_timestamps_after(recipe: ExtractedRecipe, limit_seconds: int) -> tuple[ExtractedRecipe, int]:
    """Clear step timestamps that point past ``limit_seconds``; returns the cleared count."""
    cleared = 0
    steps = []
    for step in recipe.steps:
        if step.timestamp_seconds is not None and step.timestamp_seconds > limit_seconds:
            step = replace(step, timestamp_seconds=None, duration_seconds=None)
            cleared += 1
        steps.append(step)
    if not cleared:
        return recipe, 0
    return replace(recipe, steps=tuple(steps)), cleared


async def extract_recipe(client: RecipeModel, source: ExtractionSource) -> ExtractedRecipe:
    started = time.perf_counter()

    if isinstance(source, NativeVideoSource):
        source_type: SourceType = "youtube"
        path = "video"
        call = client.generate_from_video(source.video_url)
    elif isinstance(source, TextSource):
        source_type = source.source_type
        path = "text"
        call = client.generate_from_text(build_text_prompt(source))
    else:
        raise TypeError(f"Unsupported extraction source: {type(source).__name__}")

    logger.info("Starting recipe extraction: path=%s source_type=%s", path, source_type)
    try:
        raw = await call
        recipe = normalize_recipe(parse_model_json(raw), source_type)
    except ServiceError:
        logger.exception("Recipe extraction failed: path=%s source_type=%s", path, source_type)
        raise
    except Exception as error:
        logger.exception("Unexpected error during recipe extraction: path=%s", path)
        raise ExtractionError(f"Failed to extract recipe: {error}") from error

    logger.info(
        "Recipe extraction complete: title=%s ingredients=%d steps=%d timestamped=%d duration_ms=%d",
        recipe.title,
        len(recipe.ingredients),
        len(recipe.steps),
        sum(1 for step in recipe.steps if step.timestamp_seconds is not None),
        (time.perf_counter() - started) * 1000,
    )
    return recipe
