# mise/app/routers/recipes.py
from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Response, status

from mise.app.deps import CurrentUser, get_current_user, get_ingestor
from mise.app.domain.errors import PersistenceError
from mise.app.domain.models import ExistingRecipeSummary
from mise.app.schemas.recipes import (
    ExistingRecipe,
    ExtractedRecipePayload,
    ExtractRequest,
    ExtractResponse,
    RecipeSource,
    SaveRecipeRequest,
    SaveRecipeResponse,
)
from mise.services.errors import (
    ExtractionConfigurationError,
    ExtractionError,
    FetchFailedError,
    InvalidURLError,
    NoCaptionsError,
    RateLimitedError,
    ServiceError,
)
from mise.services.extraction import normalize_recipe
from mise.services.ids import VideoUrl, classify
from mise.services.ingest import RecipeIngestor
from mise.services.types import ExtractionResult, SourceMeta

log = logging.getLogger("recipes")
router = APIRouter(prefix="/recipes", tags=["recipes"])

_SERVICE_STATUS = (
    (InvalidURLError, status.HTTP_400_BAD_REQUEST),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (FetchFailedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NoCaptionsError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ExtractionError, status.HTTP_502_BAD_GATEWAY),
    (ExtractionConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_error(exc: Exception) -> HTTPException:
    """Map a pipeline failure to a response with one human-readable message."""
    if isinstance(exc, ServiceError):
        for error_type, status_code in _SERVICE_STATUS:
            if isinstance(exc, error_type):
                return HTTPException(status_code=status_code, detail=exc.user_message)
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.user_message)

    if isinstance(exc, PersistenceError):
        if exc.status_code < 500:
            return HTTPException(status_code=exc.status_code, detail=str(exc))
        return HTTPException(status_code=exc.status_code, detail="Failed to save recipe.")

    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unexpected error.")


def _existing_payload(existing: ExistingRecipeSummary) -> ExistingRecipe:
    return ExistingRecipe(**existing.to_dict())


def _source_payload(source: SourceMeta) -> RecipeSource:
    return RecipeSource(
        sourceUrl=source.source_url,
        sourceType=source.source_type,
        youtubeVideoId=source.youtube_video_id,
        thumbnailUrl=source.thumbnail_url,
        author=source.author,
    )


def _result_from_request(body: SaveRecipeRequest) -> ExtractionResult:
    # The source type and video id come from the URL, not the client.
    kind = classify(body.source.sourceUrl)
    source_type = "youtube" if isinstance(kind, VideoUrl) else "blog"
    recipe = normalize_recipe(body.recipe.model_dump(), source_type)
    source = SourceMeta(
        source_url=body.source.sourceUrl,
        source_type=source_type,
        youtube_video_id=kind.video_id if isinstance(kind, VideoUrl) else None,
        thumbnail_url=body.source.thumbnailUrl,
        author=body.source.author,
    )
    return ExtractionResult(recipe=recipe, source=source)


@router.post("/extract", response_model=ExtractResponse)
async def extract_recipe(
    body: ExtractRequest,
    user: CurrentUser = Depends(get_current_user),
    ingestor: RecipeIngestor = Depends(get_ingestor),
) -> ExtractResponse:
    t0 = time.time()
    try:
        outcome = await ingestor.extract_from_url(body.url, user.id)
    except (ServiceError, PersistenceError) as exc:
        log.exception("extract.fail url=%s user=%s dt=%.2fs", body.url, user.id, time.time() - t0)
        raise to_http_error(exc) from exc

    if isinstance(outcome, ExistingRecipeSummary):
        log.info("extract.existing url=%s recipe=%s", body.url, outcome.id)
        return ExtractResponse(status="existing", existing=_existing_payload(outcome))

    log.info("extract.ok url=%s steps=%d dt=%.2fs", body.url, len(outcome.recipe.steps), time.time() - t0)
    return ExtractResponse(
        status="extracted",
        recipe=ExtractedRecipePayload(**outcome.recipe.to_dict()),
        source=_source_payload(outcome.source),
        warnings=list(outcome.warnings),
    )


@router.post("", response_model=SaveRecipeResponse)
async def save_recipe(
    body: SaveRecipeRequest,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    ingestor: RecipeIngestor = Depends(get_ingestor),
) -> SaveRecipeResponse:
    try:
        result = _result_from_request(body)
        saved = await ingestor.save(user.id, result)
    except (ServiceError, PersistenceError) as exc:
        log.exception("save.fail url=%s user=%s", body.source.sourceUrl, user.id)
        raise to_http_error(exc) from exc

    if isinstance(saved, ExistingRecipeSummary):
        log.info("save.existing url=%s recipe=%s", body.source.sourceUrl, saved.id)
        return SaveRecipeResponse(status="existing", recipeId=saved.id)

    response.status_code = status.HTTP_201_CREATED
    log.info("save.ok url=%s recipe=%s", body.source.sourceUrl, saved.recipe_id)
    return SaveRecipeResponse(status="created", recipeId=saved.recipe_id)


@router.delete("/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recipe(
    recipe_id: str,
    user: CurrentUser = Depends(get_current_user),
    ingestor: RecipeIngestor = Depends(get_ingestor),
) -> Response:
    try:
        await ingestor.delete(user.id, recipe_id)
    except PersistenceError as exc:
        log.warning("delete.fail recipe=%s user=%s code=%s", recipe_id, user.id, exc.code)
        raise to_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
