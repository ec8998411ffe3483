from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from authentiqc.api.main import create_app
from authentiqc.config.settings import Settings
from fakes import FakeAnalysisService, RecordingRepository


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return Settings(
        _env_file=None,
        app_name="authentiqc-test",
        database_url="",
        openai_api_key="",
        task_sweep_interval_s=3600,
    )


@pytest.fixture
def analysis() -> FakeAnalysisService:
    return FakeAnalysisService()


@pytest.fixture
def repository() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture
def client(
    settings: Settings,
    analysis: FakeAnalysisService,
    repository: RecordingRepository,
) -> TestClient:
    app = create_app(repository=repository, analysis=analysis, settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client
