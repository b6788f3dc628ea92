"""
Pytest configuration and fixtures.
"""
import json
from typing import Generator, List, Sequence, Union

import pytest
from fastapi.testclient import TestClient

from finextract.api.routes.extract import get_oracle_client
from finextract.config import Settings
from finextract.engine.models import TextToken
from finextract.engine.oracle import OracleClient
from finextract.main import app


Scripted = Union[str, dict, list, Exception]


class FakeOracle:
    """Oracle stand-in that replays scripted responses and records prompts."""

    def __init__(self, responses: Sequence[Scripted] = ()):
        self.responses: List[Scripted] = list(responses)
        self.prompts: List[str] = []
        self.image_counts: List[int] = []

    def queue(self, *responses: Scripted) -> "FakeOracle":
        self.responses.extend(responses)
        return self

    def generate(self, prompt: str, images: Sequence[str]) -> str:
        self.prompts.append(prompt)
        self.image_counts.append(len(images))
        if not self.responses:
            raise RuntimeError("FakeOracle has no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response)
        return response

    @property
    def call_count(self) -> int:
        return len(self.prompts)


class SleepRecorder:
    """Collects backoff delays instead of sleeping."""

    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def oracle_client(fake_oracle: FakeOracle, sleep_recorder: SleepRecorder) -> OracleClient:
    """OracleClient over the fake oracle, with recorded backoff."""
    return OracleClient(fake_oracle, sleep=sleep_recorder)


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment."""
    return Settings(_env_file=None, gemini_api_key=None)


@pytest.fixture
def sample_images() -> List[str]:
    """Two placeholder base64 page images."""
    return ["aW1hZ2UtMQ==", "aW1hZ2UtMg=="]


@pytest.fixture
def statement_tokens() -> List[TextToken]:
    """
    Page-1 text layer of a small income statement.

    Header row at y=700, Revenue at y=680, Total Expenses at y=660.
    Label column at x=50, FY2024 at x=300, FY2023 at x=400.
    """
    return [
        TextToken(text="Particulars", x=50, y=700),
        TextToken(text="FY2024", x=300, y=700),
        TextToken(text="FY2023", x=400, y=700),
        TextToken(text="Revenue", x=50, y=680),
        TextToken(text="100", x=302, y=681),
        TextToken(text="120", x=398, y=679),
        TextToken(text="Total Expenses", x=50, y=660),
        TextToken(text="(40)", x=305, y=660),
        TextToken(text="35", x=401, y=660),
    ]


@pytest.fixture
def detection_ok() -> dict:
    return {"hasTable": True, "tableType": "income_statement", "confidence": "high"}


@pytest.fixture
def grid_classification() -> dict:
    """Classification of statement_tokens' grid: columns 1/2 are years."""
    return {
        "columns": [
            {"index": 0, "type": "unknown"},
            {"index": 1, "type": "year", "year": "2024"},
            {"index": 2, "type": "year", "year": "2023"},
        ],
        "rows": [
            {"index": 1, "category": "Revenue"},
            {"index": 2, "category": "Expenses"},
        ],
    }


@pytest.fixture
def client(fake_oracle: FakeOracle, sleep_recorder: SleepRecorder) -> Generator[TestClient, None, None]:
    """Create a test client with the oracle dependency overridden."""

    def override_get_oracle_client():
        return OracleClient(fake_oracle, sleep=sleep_recorder)

    app.dependency_overrides[get_oracle_client] = override_get_oracle_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
