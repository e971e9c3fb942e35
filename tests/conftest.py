import json

import httpx
import pytest
from fastapi.testclient import TestClient

from studybuddy.core.config import get_settings
from studybuddy.core.deps import get_engine
from studybuddy.main import create_app
from studybuddy.services.completion import CompletionClient
from studybuddy.services.extraction import ExtractionClient
from studybuddy.services.generator import QuestionGenerator
from studybuddy.services.intake import MaterialIntake
from studybuddy.services.study_engine import StudyEngine

COMPLETION_URL = "http://collab.test/api/chat"
EXTRACTION_URL = "http://collab.test/api/upload-docx"

DEFAULT_FEEDBACK = "Verdict: correct\nWell done, that matches your notes."


class FakeCompletion:
    """
    Endpoint de complétion simulé : renvoie les réponses en file dans l'ordre
    et garde chaque payload reçu.
    """

    def __init__(self):
        self.replies = []
        self.requests = []
        self.status_code = 200

    def queue(self, *replies):
        self.replies.extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "unavailable"})
        reply = self.replies.pop(0) if self.replies else DEFAULT_FEEDBACK
        return httpx.Response(200, json={"response": reply})

    @property
    def messages(self):
        return [r["message"] for r in self.requests]


class FakeExtraction:
    """Endpoint d'extraction simulé (multipart -> {"content": ...})."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.content = "Extracted chapter on regression."

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="nope")
        return httpx.Response(200, json={"content": self.content})


@pytest.fixture
def fake_completion():
    return FakeCompletion()


@pytest.fixture
def fake_extraction():
    return FakeExtraction()


@pytest.fixture
def engine(fake_completion, fake_extraction):
    completion = CompletionClient(
        url=COMPLETION_URL,
        ai_model="smart",
        transport=httpx.MockTransport(fake_completion.handler),
    )
    extractor = ExtractionClient(
        url=EXTRACTION_URL,
        transport=httpx.MockTransport(fake_extraction.handler),
    )
    return StudyEngine(
        generator=QuestionGenerator(completion),
        intake=MaterialIntake(extractor),
        ttl_seconds=3600,
        max_upload_mb=1,
    )


@pytest.fixture
def test_client(monkeypatch, engine):
    """
    Crée un TestClient avec des collaborateurs externes simulés,
    et force quelques variables d'env pour les tests.
    """
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("APP_NAME", "StudyBuddy API (tests)")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost")
    monkeypatch.setenv("COMPLETION_URL", COMPLETION_URL)
    monkeypatch.setenv("EXTRACTION_URL", EXTRACTION_URL)

    # IMPORTANT: vider le cache des settings pour prendre en compte les env
    get_settings.cache_clear()

    app = create_app()
    app.dependency_overrides[get_engine] = lambda: engine
    client = TestClient(app)
    yield client
    get_settings.cache_clear()
