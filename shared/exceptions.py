"""Error taxonomy for the sync pipeline."""

from typing import Optional


class SyncError(Exception):
    """Base class for all sync pipeline errors."""

    kind = "sync_error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigError(SyncError, ValueError):
    """Missing or invalid configuration. Raised before the pipeline starts."""

    kind = "config_error"


class CacheLoadError(SyncError):
    """Mapping cache could not be loaded. Recovered locally as an empty cache."""

    kind = "cache_load_error"


class IngestError(SyncError):
    """External payload fetch or Sink query failed."""

    kind = "ingest_error"


class MergeError(SyncError):
    """Source rejected the merge payload."""

    kind = "merge_error"


class ExportError(SyncError):
    """Source snapshot could not be produced."""

    kind = "export_error"


class PushError(SyncError):
    """Best-effort snapshot push failed."""

    kind = "push_error"


class SinkWriteError(SyncError):
    """Writing to the Sink failed."""

    kind = "sink_write_error"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        created: int = 0,
        updated: int = 0
    ):
        super().__init__(message, cause)
        self.created = created
        self.updated = updated


class CheckpointError(SyncError):
    """Mapping cache could not be written to disk."""

    kind = "checkpoint_error"
