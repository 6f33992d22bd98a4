from __future__ import annotations

import logging
import time
from typing import Literal, Optional, Union

import httpx
from starlette.concurrency import run_in_threadpool

from mise.app.domain.models import ExistingRecipeSummary, RecipeCreated
from mise.app.infra.db.base import RecipeRepository
from mise.app.services.batching import DEFAULT_MAX_PARAMS_PER_STATEMENT
from mise.app.services.ingredient_catalog import IngredientCatalog
from mise.app.services.recipe_writer import DeduplicationGate, RecipePersistenceWriter
from mise.services.blog import fetch_blog
from mise.services.errors import ExtractionConfigurationError, NoCaptionsError
from mise.services.extraction import RecipeModel, drop_timestamps_after, extract_recipe
from mise.services.fetcher import fetch_video_metadata, fetch_youtube
from mise.services.http import DEFAULT_TIMEOUT_SECONDS, open_client
from mise.services.ids import VideoUrl, classify, watch_url
from mise.services.transcript import format_transcript_with_timestamps, transcript_end_seconds
from mise.services.types import ExtractionResult, NativeVideoSource, SourceMeta, TextSource

logger = logging.getLogger(__name__)

VideoExtractionMode = Literal["native", "transcript"]


class RecipeIngestor:
    """URL in, recipe out: classify, fetch, extract, and optionally save.

    Videos go through the model's native video input by default; with
    ``video_mode="transcript"`` the caption track is fetched and sent as
    timestamped text instead. Blocking repository calls run in the threadpool.
    Without a model, saving and deleting still work; ``extract`` raises
    ``ExtractionConfigurationError``.
    """

    def __init__(
        self,
        model: Optional[RecipeModel],
        recipes: RecipeRepository,
        catalog: IngredientCatalog,
        *,
        video_mode: VideoExtractionMode = "native",
        http_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_params: int = DEFAULT_MAX_PARAMS_PER_STATEMENT,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._model = model
        self._video_mode = video_mode
        self._http_timeout = http_timeout
        self._http_client = http_client
        self._gate = DeduplicationGate(recipes)
        self._writer = RecipePersistenceWriter(recipes, catalog, max_params)

    async def _extract_native_video(self, url: str, video_id: str) -> ExtractionResult:
        async with open_client(self._http_client, self._http_timeout) as client:
            metadata = await fetch_video_metadata(video_id, client)

        recipe = await extract_recipe(self._model, NativeVideoSource(video_url=watch_url(video_id), title=metadata.title))
        source = SourceMeta(
            source_url=url,
            source_type="youtube",
            youtube_video_id=video_id,
            thumbnail_url=metadata.thumbnail_url,
            author=metadata.author,
        )
        return ExtractionResult(recipe=recipe, source=source)

    async def _extract_transcript_video(self, url: str, video_id: str) -> ExtractionResult:
        content = await fetch_youtube(video_id, self._http_client, self._http_timeout)
        if not content.has_captions:
            raise NoCaptionsError(f"No captions available for video {video_id}")

        text_source = TextSource(
            content=format_transcript_with_timestamps(content.transcript_segments),
            source_type="youtube",
            title=content.metadata.title,
            author=content.metadata.author,
        )
        recipe = await extract_recipe(self._model, text_source)

        warnings: list[str] = []
        end_seconds = transcript_end_seconds(content.transcript_segments)
        if end_seconds is not None:
            recipe, cleared = drop_timestamps_after(recipe, end_seconds)
            if cleared:
                logger.warning("Dropped %d timestamps past transcript end for video %s", cleared, video_id)
                warnings.append(f"{cleared} step timestamp(s) pointed past the end of the video and were removed.")

        source = SourceMeta(
            source_url=url,
            source_type="youtube",
            youtube_video_id=video_id,
            thumbnail_url=content.metadata.thumbnail_url,
            author=content.metadata.author,
        )
        return ExtractionResult(recipe=recipe, source=source, warnings=tuple(warnings))

    async def _extract_blog(self, url: str) -> ExtractionResult:
        content = await fetch_blog(url, self._http_client, self._http_timeout)
        text_source = TextSource(
            content=content.content,
            source_type="blog",
            title=content.title,
            author=content.author,
        )
        recipe = await extract_recipe(self._model, text_source)
        source = SourceMeta(
            source_url=url,
            source_type="blog",
            thumbnail_url=content.thumbnail_url,
            author=content.author,
        )
        return ExtractionResult(recipe=recipe, source=source)

    async def extract(self, url: str) -> ExtractionResult:
        started = time.perf_counter()
        kind = classify(url)
        if self._model is None:
            raise ExtractionConfigurationError("No recipe model configured")

        if isinstance(kind, VideoUrl):
            if self._video_mode == "transcript":
                result = await self._extract_transcript_video(url, kind.video_id)
            else:
                result = await self._extract_native_video(url, kind.video_id)
        else:
            result = await self._extract_blog(url)

        logger.info(
            "Extraction finished: url=%s source_type=%s mode=%s duration_ms=%d",
            url,
            result.source.source_type,
            self._video_mode if isinstance(kind, VideoUrl) else "text",
            (time.perf_counter() - started) * 1000,
        )
        return result

    async def find_existing(self, user_id: str, url: str) -> Optional[ExistingRecipeSummary]:
        return await run_in_threadpool(self._gate.find_existing, user_id, url)

    async def save(
        self,
        user_id: str,
        result: ExtractionResult,
    ) -> Union[ExistingRecipeSummary, RecipeCreated]:
        existing = await self.find_existing(user_id, result.source.source_url)
        if existing is not None:
            return existing
        return await run_in_threadpool(self._writer.create, user_id, result.recipe, result.source)

    async def delete(self, user_id: str, recipe_id: str) -> None:
        await run_in_threadpool(self._writer.delete, user_id, recipe_id)

    async def extract_from_url(
        self,
        url: str,
        user_id: str,
    ) -> Union[ExtractionResult, ExistingRecipeSummary]:
        """Preview flow: extract, then report an existing copy instead if the user has one."""
        result = await self.extract(url)
        existing = await self.find_existing(user_id, url)
        if existing is not None:
            return existing
        return result
