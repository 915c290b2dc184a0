"""
Pytest Configuration and Fixtures.

The LLM upstream is replaced by a fake chat-completions client so the real
LLMGateway code runs without network access.
"""
import json
from types import SimpleNamespace

import httpx
import openai
import pytest
from fastapi.testclient import TestClient

from backend.ai import LLMGateway
from backend.database import RecordStore
from backend.exports import ExportRenderer
from backend.main import create_app

VALID_MCQ_JSON = json.dumps({
    "questions": [
        {
            "id": 1,
            "question": "Q?",
            "options": {"A": "a", "B": "b", "C": "c", "D": "d"},
            "correct_answer": "B",
            "explanation": "x",
        }
    ]
})

SAMPLE_NOTES = "# Photosynthesis - Study Notes\n\n## 1. Introduction & Overview\n\nPlants turn light into sugar.\n"
SAMPLE_SLIDES = "# Intro\n- point one\n- point two\n---\n# Next\n- point three\n---"


def kind_of(prompt: str) -> str:
    if "multiple choice questions" in prompt:
        return "mcqs"
    if "-slide presentation" in prompt:
        return "slides"
    return "notes"


class FakeCompletions:
    """Stands in for `AsyncOpenAI().chat.completions`."""

    def __init__(self, responses=None, errors=None):
        self.responses = {"notes": SAMPLE_NOTES, "slides": SAMPLE_SLIDES, "mcqs": VALID_MCQ_JSON}
        self.responses.update(responses or {})
        self.errors = errors or {}
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        kind = kind_of(kwargs["messages"][0]["content"])
        if kind in self.errors:
            raise self.errors[kind]
        content = self.responses[kind]
        if isinstance(content, SimpleNamespace):
            return content
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeClient:
    def __init__(self, completions: FakeCompletions):
        self.chat = SimpleNamespace(completions=completions)


def connection_error(message: str = "Connection error.") -> openai.APIConnectionError:
    return openai.APIConnectionError(message=message, request=httpx.Request("POST", "https://openrouter.test/chat/completions"))


@pytest.fixture
def completions():
    return FakeCompletions()


@pytest.fixture
def gateway(completions):
    return LLMGateway(api_key="sk-test-secret", base_url="https://openrouter.test/api/v1", client=FakeClient(completions))


@pytest.fixture
def store(tmp_path):
    store = RecordStore(f"sqlite:///{tmp_path / 'test.db'}")
    store.init()
    yield store
    store.close()


@pytest.fixture
def renderer(tmp_path):
    renderer = ExportRenderer(exports_dir=tmp_path / "exports", pdf_timeout=5)
    renderer.init()
    return renderer


@pytest.fixture
def client(store, gateway, renderer):
    app = create_app(store=store, gateway=gateway, renderer=renderer)
    with TestClient(app) as client:
        yield client
