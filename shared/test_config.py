"""Unit tests for configuration utilities."""

import pytest

from shared.config import (
    DEFAULT_DEDUP_TAG,
    SyncSettings,
    clean_database_id,
    get_bool_env,
    get_env,
    get_sync_settings,
)
from shared.exceptions import ConfigError

DB_ID = "2fb86a4c5fbf806dbeb6f3f2c1b23d10"


@pytest.fixture
def roam_env(monkeypatch):
    """Minimal valid ROAM_API_* environment."""
    for key in ("NODOWNLOAD", "REMOVEZIP", "DEDUP_TAG", "TARGET_DATABASE",
                "MAPPING_CACHE_FILE", "PRIVATE_API_URL", "EXPORT_URL", "DAILY_NOTE_LINKS"):
        monkeypatch.delenv(f"ROAM_API_{key}", raising=False)
    monkeypatch.setenv("ROAM_API_GRAPH", "mygraph")
    monkeypatch.setenv("ROAM_API_GRAPH_FILE", "/tmp/mygraph.json")
    monkeypatch.setenv("ROAM_API_NOTION_TOKEN", "secret")
    monkeypatch.setenv("ROAM_API_SOURCE_DATABASE", DB_ID)
    return monkeypatch


class TestGetEnv:
    """Tests for the environment helpers."""

    def test_required_missing(self, monkeypatch):
        monkeypatch.delenv("SOME_MISSING_KEY", raising=False)

        with pytest.raises(ConfigError):
            get_env("SOME_MISSING_KEY", required=True)

    def test_default(self, monkeypatch):
        monkeypatch.delenv("SOME_MISSING_KEY", raising=False)

        assert get_env("SOME_MISSING_KEY", "fallback") == "fallback"

    @pytest.mark.parametrize("value,expected", [
        ("1", True), ("true", True), ("Yes", True), ("0", False), ("no", False), ("", True)
    ])
    def test_bool_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("SOME_FLAG", value)

        assert get_bool_env("SOME_FLAG", True) is expected


class TestCleanDatabaseId:
    """Tests for clean_database_id."""

    def test_plain(self):
        assert clean_database_id(DB_ID) == DB_ID

    def test_dashed(self):
        assert clean_database_id("2fb86a4c-5fbf-806d-beb6-f3f2c1b23d10") == DB_ID

    def test_url(self):
        url = f"https://www.notion.so/workspace/My-Notes-{DB_ID}?v=abc"

        assert clean_database_id(url) == DB_ID

    def test_invalid(self):
        with pytest.raises(ConfigError):
            clean_database_id("not-a-database")


class TestSyncSettings:
    """Tests for SyncSettings and get_sync_settings."""

    def test_from_env(self, roam_env):
        settings = get_sync_settings()

        assert settings.graph == "mygraph"
        assert settings.dedup_tag == DEFAULT_DEDUP_TAG
        assert settings.remove_zip is True
        assert settings.did_download is True
        assert settings.daily_note_links is True

    def test_target_defaults_to_source(self, roam_env):
        settings = get_sync_settings()

        assert settings.target_database_id == DB_ID

    def test_nodownload(self, roam_env):
        roam_env.setenv("ROAM_API_NODOWNLOAD", "true")

        assert get_sync_settings().did_download is False

    def test_missing_graph(self, roam_env):
        roam_env.delenv("ROAM_API_GRAPH")

        with pytest.raises(ConfigError, match="graph"):
            get_sync_settings()

    def test_unvalidated_settings_allow_missing_values(self, roam_env):
        roam_env.delenv("ROAM_API_GRAPH")

        assert get_sync_settings(validate=False).graph == ""

    def test_no_database_at_all(self):
        settings = SyncSettings(graph="g", graph_file="g.json", notion_token="t")

        with pytest.raises(ConfigError):
            settings.validate()

    def test_empty_dedup_tag(self):
        settings = SyncSettings(
            graph="g", graph_file="g.json", notion_token="t",
            target_database_id=DB_ID, dedup_tag=""
        )

        with pytest.raises(ConfigError):
            settings.validate()

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)
