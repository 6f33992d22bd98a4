from __future__ import annotations

import logging
from pathlib import Path

import httpx
from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError

from mise.services.errors import ExtractionConfigurationError, ExtractionError, RateLimitedError

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"
TEXT_SYSTEM_PROMPT = PROMPTS_DIR / "recipe_extraction.txt"
VIDEO_PROMPT = PROMPTS_DIR / "video_extraction.txt"

DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_VIDEO_MODEL = "gemini-2.5-pro"


class GeminiPromptError(ExtractionConfigurationError):
    pass


def _nullable(kind: types.Type, description: str) -> types.Schema:
    return types.Schema(type=kind, description=description, nullable=True)


RECIPE_RESPONSE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "title": types.Schema(type=types.Type.STRING, description="Recipe title"),
        "description": _nullable(types.Type.STRING, "Brief description of the recipe"),
        "servings": _nullable(types.Type.INTEGER, "Number of servings"),
        "prepTimeMinutes": _nullable(types.Type.INTEGER, "Preparation time in minutes"),
        "cookTimeMinutes": _nullable(types.Type.INTEGER, "Cooking time in minutes"),
        "calories": _nullable(types.Type.INTEGER, "Estimated calories per serving"),
        "protein": _nullable(types.Type.INTEGER, "Estimated grams of protein per serving"),
        "carbs": _nullable(types.Type.INTEGER, "Estimated grams of carbohydrates per serving"),
        "fat": _nullable(types.Type.INTEGER, "Estimated grams of fat per serving"),
        "fiber": _nullable(types.Type.INTEGER, "Estimated grams of fiber per serving"),
        "ingredients": types.Schema(
            type=types.Type.ARRAY,
            description="List of ingredients",
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "name": types.Schema(
                        type=types.Type.STRING,
                        description="Normalized ingredient name (e.g., 'chicken breasts' not '2 lbs boneless skinless chicken breasts')",
                    ),
                    "quantity": _nullable(types.Type.STRING, "Amount (e.g., '2', '1/2')"),
                    "unit": _nullable(types.Type.STRING, "Measurement unit (e.g., 'cups', 'lbs', 'tbsp')"),
                    "notes": _nullable(types.Type.STRING, "Preparation notes (e.g., 'diced', 'room temperature')"),
                },
                required=["name"],
            ),
        ),
        "steps": types.Schema(
            type=types.Type.ARRAY,
            description="List of cooking steps with accurate video timestamps",
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "stepNumber": types.Schema(type=types.Type.INTEGER, description="1-indexed step number"),
                    "instruction": types.Schema(type=types.Type.STRING, description="Clear cooking instruction"),
                    "timestampSeconds": _nullable(
                        types.Type.INTEGER,
                        "Exact video timestamp in seconds when this step begins (video sources only)",
                    ),
                    "durationSeconds": _nullable(
                        types.Type.INTEGER,
                        "Duration of this step in seconds until the next step begins",
                    ),
                },
                required=["stepNumber", "instruction"],
            ),
        ),
    },
    required=["title", "ingredients", "steps"],
)


def is_rate_limited(error: APIError) -> bool:
    status_code = getattr(error, "code", None) or getattr(error, "status_code", None)
    return status_code == 429 or "RESOURCE_EXHAUSTED" in str(error)


class GeminiClient:
    """Structured-output recipe calls against the Gemini API.

    Both methods return the raw JSON text of the response; parsing and
    normalization happen in ``mise.services.extraction``.
    """

    def __init__(
        self,
        api_key: str,
        text_model: str = DEFAULT_TEXT_MODEL,
        video_model: str = DEFAULT_VIDEO_MODEL,
    ) -> None:
        if not api_key:
            raise ExtractionConfigurationError("Missing Gemini API key.")
        self.text_model = text_model
        self.video_model = video_model
        self._client = genai.Client(api_key=api_key)

    def _load_system_prompt(self, file_path: Path) -> str:
        try:
            return file_path.read_text(encoding="utf-8")
        except FileNotFoundError as not_found_error:
            raise GeminiPromptError(f"Prompt file not found: {file_path}") from not_found_error
        except OSError as io_error:
            raise GeminiPromptError(f"Unable to read prompt file: {io_error}") from io_error

    def _config(self, system_instruction: str | None = None) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            response_schema=RECIPE_RESPONSE_SCHEMA,
        )

    async def _generate(self, model: str, contents, config: types.GenerateContentConfig) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except ClientError as err:
            if is_rate_limited(err):
                raise RateLimitedError("Gemini API rate limit reached.") from err
            raise ExtractionError(f"Gemini rejected the request: {err}") from err
        except APIError as err:
            raise ExtractionError(f"Gemini API error: {err}") from err
        except httpx.HTTPError as err:
            raise ExtractionError(f"Network error calling Gemini: {err}") from err

        text = response.text
        if not text:
            raise ExtractionError("Model response did not include text content.")
        logger.debug("Gemini response received: model=%s chars=%d", model, len(text))
        return text

    async def generate_from_text(self, prompt: str) -> str:
        system_instruction = self._load_system_prompt(TEXT_SYSTEM_PROMPT)
        return await self._generate(self.text_model, prompt, self._config(system_instruction))

    async def generate_from_video(self, video_url: str) -> str:
        # Video part first, then the instructions.
        contents = types.Content(
            role="user",
            parts=[
                types.Part(file_data=types.FileData(file_uri=video_url)),
                types.Part(text=self._load_system_prompt(VIDEO_PROMPT)),
            ],
        )
        return await self._generate(self.video_model, contents, self._config())
