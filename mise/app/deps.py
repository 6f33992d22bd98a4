# mise/app/deps.py
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import Client, create_client

from mise.app.config import Settings, get_settings
from mise.app.infra.db.supabase_recipe_repo import (
    SupabaseIngredientRepository,
    SupabaseRecipeRepository,
)
from mise.app.services.ingredient_catalog import IngredientCatalog
from mise.services.errors import ExtractionConfigurationError
from mise.services.gemini_client import GeminiClient
from mise.services.ingest import RecipeIngestor

logger = logging.getLogger(__name__)

_client: Client | None = None
_gemini: GeminiClient | None = None


def get_supabase(settings: Settings = Depends(get_settings)) -> Client:
    global _client
    if _client is None:
        _client = create_client(str(settings.SUPABASE_URL), settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


def get_gemini_client(settings: Settings = Depends(get_settings)) -> GeminiClient:
    global _gemini
    if _gemini is None:
        _gemini = GeminiClient(
            api_key=settings.GEMINI_API_KEY,
            text_model=settings.GEMINI_TEXT_MODEL,
            video_model=settings.GEMINI_VIDEO_MODEL,
        )
    return _gemini


def get_optional_gemini_client(settings: Settings = Depends(get_settings)) -> GeminiClient | None:
    try:
        return get_gemini_client(settings)
    except ExtractionConfigurationError as exc:
        logger.warning("Gemini client unavailable, extraction disabled: %s", exc)
        return None


def get_ingestor(
    settings: Settings = Depends(get_settings),
    supa: Client = Depends(get_supabase),
    gemini: GeminiClient | None = Depends(get_optional_gemini_client),
) -> RecipeIngestor:
    catalog = IngredientCatalog(
        SupabaseIngredientRepository(supa),
        max_params=settings.DB_MAX_PARAMS_PER_STATEMENT,
    )
    return RecipeIngestor(
        gemini,
        SupabaseRecipeRepository(supa),
        catalog,
        video_mode=settings.VIDEO_EXTRACTION_MODE,
        http_timeout=settings.HTTP_TIMEOUT_SECONDS,
        max_params=settings.DB_MAX_PARAMS_PER_STATEMENT,
    )


auth_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None


async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Validate a Supabase access token (Authorization: Bearer <token>)
    and return the minimal user record.
    """
    if cred is None or cred.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    try:
        res = supa.auth.get_user(cred.credentials)
    except Exception as exc:
        logger.info("Token validation failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid/expired token") from exc

    user = res.user if res else None
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    meta = getattr(user, "user_metadata", None) or {}
    name = meta.get("name") if isinstance(meta, dict) else None
    return CurrentUser(id=str(user.id), email=user.email, name=name)
