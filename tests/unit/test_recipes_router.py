from __future__ import annotations

from types import SimpleNamespace
from typing import Optional
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mise.app import deps
from mise.app.config import Settings, get_settings
from mise.app.deps import CurrentUser, get_current_user, get_ingestor, get_supabase
from mise.app.domain.errors import NotFoundError, PermissionDeniedError, QueryError
from mise.app.domain.models import ExistingRecipeSummary, RecipeCreated
from mise.app.routers.recipes import router
from mise.services.errors import (
    ExtractionConfigurationError,
    ExtractionError,
    FetchFailedError,
    InvalidURLError,
    NoCaptionsError,
    RateLimitedError,
)
from mise.services.types import ExtractedRecipe, ExtractedStep, ExtractionResult, SourceMeta

RESULT = ExtractionResult(
    recipe=ExtractedRecipe(
        title="Chili",
        steps=(ExtractedStep(step_number=1, instruction="Stir.", timestamp_seconds=12),),
    ),
    source=SourceMeta(
        source_url="https://youtu.be/abc123",
        source_type="youtube",
        youtube_video_id="abc123",
    ),
    warnings=("1 step timestamp(s) pointed past the end of the video and were removed.",),
)


class StubIngestor:
    def __init__(self) -> None:
        self.extract_outcome: object = RESULT
        self.save_outcome: object = RecipeCreated(recipe_id="r-new")
        self.error: Optional[Exception] = None
        self.saved: list[tuple[str, ExtractionResult]] = []
        self.deleted: list[tuple[str, str]] = []

    async def extract_from_url(self, url: str, user_id: str):
        if self.error:
            raise self.error
        return self.extract_outcome

    async def save(self, user_id: str, result: ExtractionResult):
        if self.error:
            raise self.error
        self.saved.append((user_id, result))
        return self.save_outcome

    async def delete(self, user_id: str, recipe_id: str) -> None:
        if self.error:
            raise self.error
        self.deleted.append((user_id, recipe_id))


@pytest.fixture
def ingestor() -> StubIngestor:
    return StubIngestor()


@pytest.fixture
def client(ingestor: StubIngestor) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="u1")
    app.dependency_overrides[get_ingestor] = lambda: ingestor
    return TestClient(app)


class TestExtractRoute:
    def test_preview(self, client: TestClient) -> None:
        response = client.post("/recipes/extract", json={"url": "https://youtu.be/abc123"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "extracted"
        assert body["recipe"]["steps"][0]["timestampSeconds"] == 12
        assert body["source"]["youtubeVideoId"] == "abc123"
        assert len(body["warnings"]) == 1

    def test_existing(self, client: TestClient, ingestor: StubIngestor) -> None:
        ingestor.extract_outcome = ExistingRecipeSummary(id="r1", title="Chili", source_url="https://youtu.be/abc123")

        body = client.post("/recipes/extract", json={"url": "https://youtu.be/abc123"}).json()

        assert body["status"] == "existing"
        assert body["existing"]["id"] == "r1"
        assert body["recipe"] is None

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (InvalidURLError("bad"), 400),
            (FetchFailedError("down"), 422),
            (NoCaptionsError("none"), 422),
            (RateLimitedError("slow down"), 429),
            (ExtractionError("garbled"), 502),
            (ExtractionConfigurationError("no key"), 503),
            (QueryError("recipe"), 500),
        ],
    )
    def test_error_mapping(self, client: TestClient, ingestor: StubIngestor, error: Exception, status_code: int) -> None:
        ingestor.error = error

        response = client.post("/recipes/extract", json={"url": "https://youtu.be/abc123"})

        assert response.status_code == status_code
        if hasattr(error, "user_message"):
            assert response.json()["detail"] == error.user_message

    def test_empty_url_rejected(self, client: TestClient) -> None:
        assert client.post("/recipes/extract", json={"url": ""}).status_code == 422


class TestSaveRoute:
    PAYLOAD = {
        "recipe": {
            "title": "Chili",
            "ingredients": [{"name": "onion"}],
            "steps": [
                {"stepNumber": 2, "instruction": "Simmer.", "timestampSeconds": 40},
                {"stepNumber": 1, "instruction": "Chop.", "timestampSeconds": 5},
            ],
        },
        "source": {"sourceUrl": "https://www.youtube.com/watch?v=abc123", "sourceType": "blog"},
    }

    def test_created(self, client: TestClient, ingestor: StubIngestor) -> None:
        response = client.post("/recipes", json=self.PAYLOAD)

        assert response.status_code == 201
        assert response.json() == {"status": "created", "recipeId": "r-new"}

        user_id, result = ingestor.saved[0]
        assert user_id == "u1"
        # Source type and video id are derived from the URL.
        assert result.source.source_type == "youtube"
        assert result.source.youtube_video_id == "abc123"
        assert [step.instruction for step in result.recipe.steps] == ["Chop.", "Simmer."]

    def test_existing(self, client: TestClient, ingestor: StubIngestor) -> None:
        ingestor.save_outcome = ExistingRecipeSummary(id="r1", title="Chili", source_url="x")

        response = client.post("/recipes", json=self.PAYLOAD)

        assert response.status_code == 200
        assert response.json() == {"status": "existing", "recipeId": "r1"}

    def test_invalid_source_url(self, client: TestClient, ingestor: StubIngestor) -> None:
        payload = {**self.PAYLOAD, "source": {"sourceUrl": "nope", "sourceType": "blog"}}
        assert client.post("/recipes", json=payload).status_code == 400
        assert ingestor.saved == []


class TestDeleteRoute:
    def test_deleted(self, client: TestClient, ingestor: StubIngestor) -> None:
        assert client.delete("/recipes/r1").status_code == 204
        assert ingestor.deleted == [("u1", "r1")]

    def test_not_found(self, client: TestClient, ingestor: StubIngestor) -> None:
        ingestor.error = NotFoundError("recipe", "r1")
        assert client.delete("/recipes/r1").status_code == 404

    def test_not_owner(self, client: TestClient, ingestor: StubIngestor) -> None:
        ingestor.error = PermissionDeniedError("recipe", "You don't have permission to delete this recipe")
        response = client.delete("/recipes/r1")
        assert response.status_code == 403
        assert "permission" in response.json()["detail"]


class TestAuth:
    def _app(self, supa: MagicMock, ingestor: StubIngestor) -> TestClient:
        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_supabase] = lambda: supa
        app.dependency_overrides[get_ingestor] = lambda: ingestor
        return TestClient(app)

    def test_missing_token(self, ingestor: StubIngestor) -> None:
        response = self._app(MagicMock(), ingestor).delete("/recipes/r1")
        assert response.status_code == 401

    def test_valid_token(self, ingestor: StubIngestor) -> None:
        supa = MagicMock()
        supa.auth.get_user.return_value = SimpleNamespace(
            user=SimpleNamespace(id="u9", email="cook@example.com", user_metadata={"name": "Cook"})
        )

        response = self._app(supa, ingestor).delete("/recipes/r1", headers={"Authorization": "Bearer token"})

        assert response.status_code == 204
        supa.auth.get_user.assert_called_once_with("token")
        assert ingestor.deleted == [("u9", "r1")]

    def test_rejected_token(self, ingestor: StubIngestor) -> None:
        supa = MagicMock()
        supa.auth.get_user.side_effect = RuntimeError("jwt expired")

        response = self._app(supa, ingestor).delete("/recipes/r1", headers={"Authorization": "Bearer token"})

        assert response.status_code == 401


class TestWithoutGeminiKey:
    @pytest.fixture
    def keyless_app(self, monkeypatch: pytest.MonkeyPatch) -> tuple[TestClient, MagicMock]:
        monkeypatch.setattr(deps, "_gemini", None)
        settings = Settings(
            SUPABASE_URL="https://project.supabase.co",
            SUPABASE_SERVICE_ROLE_KEY="service-key",
            GEMINI_API_KEY="",
        )
        supa = MagicMock()
        owner_query = supa.table.return_value.select.return_value.eq.return_value.limit.return_value
        owner_query.execute.return_value = SimpleNamespace(data=[{"created_by_id": "u1"}])

        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_supabase] = lambda: supa
        app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="u1")
        return TestClient(app), supa

    def test_delete_still_works(self, keyless_app: tuple[TestClient, MagicMock]) -> None:
        http, supa = keyless_app

        assert http.delete("/recipes/r1").status_code == 204
        supa.table.return_value.delete.return_value.eq.assert_called_once_with("id", "r1")

    def test_extract_reports_configuration(self, keyless_app: tuple[TestClient, MagicMock]) -> None:
        http, _ = keyless_app

        response = http.post("/recipes/extract", json={"url": "https://youtu.be/abc123"})

        assert response.status_code == 503
        assert response.json()["detail"] == ExtractionConfigurationError.user_message
