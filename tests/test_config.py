import pytest

from vertex_rag.config import Settings


def test_defaults_from_empty_env():
    settings = Settings.from_env({})

    assert settings.project_id is None
    assert settings.location == "us-central1"
    assert settings.key_file is None
    assert settings.poll_interval == 2.0
    assert settings.max_wait == 600.0
    assert settings.validate() == []


def test_reads_environment():
    settings = Settings.from_env(
        {
            "GOOGLE_CLOUD_PROJECT": "fallback",
            "VERTEX_RAG_PROJECT": "demo",
            "VERTEX_RAG_LOCATION": "europe-west4",
            "VERTEX_RAG_MODEL": "gemini-1.5-flash-002",
            "VERTEX_RAG_POLL_INTERVAL": "0.5",
            "VERTEX_RAG_MAX_WAIT": "30",
            "VERTEX_RAG_BACKOFF": "1.5",
        }
    )

    assert settings.project_id == "demo"
    assert settings.location == "europe-west4"
    assert settings.model == "gemini-1.5-flash-002"

    policy = settings.poll_policy()
    assert policy.interval == 0.5
    assert policy.max_wait == 30.0
    assert policy.backoff == 1.5


def test_project_falls_back_to_google_cloud_project():
    assert Settings.from_env({"GOOGLE_CLOUD_PROJECT": "fallback"}).project_id == "fallback"


def test_zero_max_wait_disables_the_limit():
    assert Settings.from_env({"VERTEX_RAG_MAX_WAIT": "0"}).max_wait is None


def test_non_numeric_values_are_rejected():
    with pytest.raises(ValueError, match="VERTEX_RAG_POLL_INTERVAL"):
        Settings.from_env({"VERTEX_RAG_POLL_INTERVAL": "soon"})


def test_validate_reports_problems(tmp_path):
    settings = Settings(key_file=str(tmp_path / "missing.json"), poll_interval=-1, backoff=0.5)

    errors = settings.validate()

    assert any("key_file does not exist" in e for e in errors)
    assert "poll policy: interval must be positive" in errors
    assert "poll policy: backoff must be at least 1" in errors
