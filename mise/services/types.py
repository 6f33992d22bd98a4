from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

SourceType = Literal["youtube", "blog"]


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    offset_ms: int
    duration_ms: int


@dataclass(frozen=True)
class VideoMetadata:
    title: str
    author: Optional[str]
    thumbnail_url: Optional[str]


@dataclass(frozen=True)
class VideoContent:
    video_id: str
    metadata: VideoMetadata
    transcript_segments: tuple[TranscriptSegment, ...] = ()

    @property
    def has_captions(self) -> bool:
        return len(self.transcript_segments) > 0


@dataclass(frozen=True)
class BlogContent:
    title: str
    content: str
    thumbnail_url: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class TextSource:
    """Plain text handed to the model: a timestamped transcript or blog text."""

    content: str
    source_type: SourceType
    title: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class NativeVideoSource:
    """A video reference the model watches directly."""

    video_url: str
    title: Optional[str] = None


ExtractionSource = Union[TextSource, NativeVideoSource]


@dataclass(frozen=True)
class ExtractedIngredient:
    name: str
    quantity: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ExtractedStep:
    step_number: int
    instruction: str
    timestamp_seconds: Optional[int] = None
    duration_seconds: Optional[int] = None


@dataclass(frozen=True)
class ExtractedRecipe:
    title: str
    description: Optional[str] = None
    servings: Optional[int] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    calories: Optional[int] = None
    protein: Optional[int] = None
    carbs: Optional[int] = None
    fat: Optional[int] = None
    fiber: Optional[int] = None
    ingredients: tuple[ExtractedIngredient, ...] = ()
    steps: tuple[ExtractedStep, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "servings": self.servings,
            "prepTimeMinutes": self.prep_time_minutes,
            "cookTimeMinutes": self.cook_time_minutes,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "fiber": self.fiber,
            "ingredients": [
                {
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit": item.unit,
                    "notes": item.notes,
                }
                for item in self.ingredients
            ],
            "steps": [
                {
                    "stepNumber": step.step_number,
                    "instruction": step.instruction,
                    "timestampSeconds": step.timestamp_seconds,
                    "durationSeconds": step.duration_seconds,
                }
                for step in self.steps
            ],
        }


@dataclass(frozen=True)
class SourceMeta:
    source_url: str
    source_type: SourceType
    youtube_video_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class ExtractionResult:
    recipe: ExtractedRecipe
    source: SourceMeta
    warnings: tuple[str, ...] = field(default_factory=tuple)
