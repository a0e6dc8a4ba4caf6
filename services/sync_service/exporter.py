"""Exporting the Roam graph after the merge."""

import logging

from shared.exceptions import ExportError
from shared.models import SyncSnapshot
from shared.stores import SourceStore

logger = logging.getLogger(__name__)


class SourceExporter:
    """Produces the snapshot that gets pushed and written to Notion."""

    def __init__(self, source_store: SourceStore, requested_cleanup: bool):
        self.source_store = source_store
        self.requested_cleanup = requested_cleanup

    @property
    def cleanup_artifacts(self) -> bool:
        # Only a download leaves something behind to clean up.
        return self.requested_cleanup and self.source_store.did_download

    async def export(self) -> SyncSnapshot:
        """
        Export the graph.

        Raises:
            ExportError: If the export fails
        """
        try:
            snapshot = await self.source_store.export_snapshot(self.cleanup_artifacts)
        except Exception as e:
            raise ExportError(f"Roam export failed: {e}", e)

        logger.info(f"Exported {len(snapshot.notes)} pages from graph {snapshot.graph_name}")
        return snapshot
