"""Shared configuration utilities."""

import os
import re
from dataclasses import dataclass
from typing import Optional

from shared.exceptions import ConfigError

ENV_PREFIX = "ROAM_API_"
DEFAULT_DEDUP_TAG = "RoamImported"


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    """Get environment variable with optional default and required validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigError(f"Required environment variable {key} is not set")
    return value


def get_bool_env(key: str, default: bool) -> bool:
    """Get a boolean environment variable ("1", "true", "yes" and "on" are truthy)."""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def clean_database_id(database_id: str) -> str:
    """
    Clean and extract a Notion database ID from various formats.

    Handles:
    - Plain UUID: 2fb86a4c5fbf806dbeb6f3f2c1b23d10
    - UUID with dashes: 2fb86a4c-5fbf-806d-beb6-f3f2c1b23d10
    - Notion URL: https://www.notion.so/2fb86a4c5fbf806dbeb6f3f2c1b23d10?v=...

    Args:
        database_id: Database ID in any format

    Returns:
        Clean database ID (32 hex characters without dashes)

    Raises:
        ConfigError: If database ID is invalid
    """
    database_id = database_id.strip()

    if database_id.startswith('http'):
        # The id is the last path segment, possibly prefixed by a page slug
        match = re.search(r'([a-f0-9-]{32,36})(\?|$)', database_id)
        if not match:
            raise ConfigError(f"Could not extract database ID from URL: {database_id}")
        database_id = match.group(1)

    database_id = database_id.replace('-', '')

    if not re.match(r'^[a-f0-9]{32}$', database_id):
        raise ConfigError(f"Invalid database ID format: {database_id}. Expected 32 hex characters.")

    return database_id


@dataclass
class SyncSettings:
    """Settings for one sync run."""
    graph: str
    graph_file: str
    notion_token: str
    archive_dir: str = "."
    mapping_cache_file: Optional[str] = None
    source_database_id: Optional[str] = None
    target_database_id: Optional[str] = None
    private_api_url: Optional[str] = None
    export_url: Optional[str] = None
    no_download: bool = False
    remove_zip: bool = True
    dedup_tag: str = DEFAULT_DEDUP_TAG
    daily_note_links: bool = True
    tags_property: str = "Tags"

    @property
    def did_download(self) -> bool:
        return not self.no_download

    def validate(self) -> 'SyncSettings':
        """
        Check required values and normalise database ids.

        Returns:
            self, for chaining

        Raises:
            ConfigError: If a required value is missing or malformed
        """
        for name in ("graph", "graph_file", "notion_token"):
            if not getattr(self, name):
                raise ConfigError(f"Missing required setting: {name}")

        if self.source_database_id:
            self.source_database_id = clean_database_id(self.source_database_id)
        if self.target_database_id:
            self.target_database_id = clean_database_id(self.target_database_id)
        else:
            self.target_database_id = self.source_database_id

        if not self.target_database_id:
            raise ConfigError("A target Notion database is required (or a source database to fall back to)")
        if not self.dedup_tag:
            raise ConfigError("Dedup tag must not be empty")
        return self


def get_sync_settings(validate: bool = True) -> SyncSettings:
    """
    Build sync settings from ROAM_API_* environment variables.

    Args:
        validate: Whether to validate required values immediately

    Returns:
        SyncSettings instance
    """
    settings = SyncSettings(
        graph=get_env(f"{ENV_PREFIX}GRAPH", ""),
        graph_file=get_env(f"{ENV_PREFIX}GRAPH_FILE", ""),
        notion_token=get_env(f"{ENV_PREFIX}NOTION_TOKEN", ""),
        archive_dir=get_env(f"{ENV_PREFIX}DIR", "."),
        mapping_cache_file=get_env(f"{ENV_PREFIX}MAPPING_CACHE_FILE") or None,
        source_database_id=get_env(f"{ENV_PREFIX}SOURCE_DATABASE") or None,
        target_database_id=get_env(f"{ENV_PREFIX}TARGET_DATABASE") or None,
        private_api_url=get_env(f"{ENV_PREFIX}PRIVATE_API_URL") or None,
        export_url=get_env(f"{ENV_PREFIX}EXPORT_URL") or None,
        no_download=get_bool_env(f"{ENV_PREFIX}NODOWNLOAD", False),
        remove_zip=get_bool_env(f"{ENV_PREFIX}REMOVEZIP", True),
        dedup_tag=get_env(f"{ENV_PREFIX}DEDUP_TAG", DEFAULT_DEDUP_TAG),
        daily_note_links=get_bool_env(f"{ENV_PREFIX}DAILY_NOTE_LINKS", True),
        tags_property=get_env(f"{ENV_PREFIX}TAGS_PROPERTY", "Tags")
    )
    if validate:
        settings.validate()
    return settings
