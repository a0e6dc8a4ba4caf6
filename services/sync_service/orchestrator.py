"""Sync orchestration logic."""

import asyncio
import logging
from typing import Optional
from uuid import uuid4

from services.notion_writer.writer import NotionSinkStore
from services.roam_graph.graph import LocalRoamGraph
from services.sync_service.exporter import SourceExporter
from services.sync_service.ingest import IngestStage
from services.sync_service.notifications import NotificationService
from services.sync_service.push import PushStage
from services.sync_service.reconciler import SinkReconciler
from services.sync_service.sink_writer import SourceToSinkWriter
from services.sync_service.source_writer import SourceWriter
from shared.config import SyncSettings
from shared.exceptions import CheckpointError, SinkWriteError, SyncError
from shared.http_fetch import ExternalFetch
from shared.mapping_cache import MappingCache, read_cache_file, write_cache_file
from shared.models import PipelineState, SyncRunResult
from shared.stores import SinkStore, SourceStore

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Runs one sync between a Roam graph and Notion.

    Stages run strictly in sequence, except for the two ingest producers and
    the push, which runs alongside the Notion write. Only one run may use a
    given mapping cache file at a time; nothing here locks it.
    """

    def __init__(
        self,
        settings: SyncSettings,
        source_store: SourceStore,
        sink_store: SinkStore,
        fetch: ExternalFetch,
        notification_service: Optional[NotificationService] = None
    ):
        """
        Initialize the sync orchestrator.

        Args:
            settings: Validated sync settings
            source_store: Roam side
            sink_store: Notion side
            fetch: HTTP collaborator for the external payload and the push
            notification_service: Notified when a run aborts
        """
        self.settings = settings
        self.source_store = source_store
        self.sink_store = sink_store
        self.fetch = fetch
        self.notification_service = notification_service or NotificationService()
        self.mapping: Optional[MappingCache] = None

    async def execute_sync(self, job_id: Optional[str] = None) -> SyncRunResult:
        """
        Execute the synchronization workflow.

        1. Loads the mapping cache
        2. Fetches the external payload and eligible Notion pages concurrently
        3. Merges both into Roam and tags the imported Notion pages
        4. Exports the graph and saves the mapping
        5. Pushes the export (best effort) while writing it into Notion
        6. Saves the mapping again

        Args:
            job_id: Optional job identifier, generated when missing

        Returns:
            SyncRunResult in state DONE or ABORTED
        """
        result = SyncRunResult(job_id=job_id or str(uuid4()))
        logger.info(f"Starting sync job {result.job_id} for graph {self.settings.graph}")

        try:
            await self._run(result)
        except SyncError as e:
            result.failed_stage = result.state
            result.state = PipelineState.ABORTED
            result.error_kind = e.kind
            result.error = str(e)
            logger.error(
                f"Sync job {result.job_id} aborted during {result.failed_stage.value}: "
                f"{e.kind}: {e}",
                exc_info=e.cause is not None
            )
            await self.notification_service.send_critical_error_notification(
                job_id=result.job_id,
                graph=self.settings.graph,
                error_message=str(e),
                context={"stage": result.failed_stage.value, "kind": e.kind}
            )
            return result

        logger.info(f"Sync job {result.job_id} completed: {result.to_dict()['summary']}")
        return result

    async def _run(self, result: SyncRunResult) -> None:
        settings = self.settings

        self.mapping = mapping = self._load_mapping()
        reconciler = SinkReconciler(
            mapping.read_only(),
            settings.dedup_tag,
            daily_note_links=settings.daily_note_links
        )

        self._transition(result, PipelineState.INGEST)
        ingested = await IngestStage(
            fetch=self.fetch,
            sink_store=self.sink_store,
            reconciler=reconciler,
            private_api_url=settings.private_api_url,
            source_notebook=settings.source_database_id,
            dedup_tag=settings.dedup_tag
        ).run()
        result.external_items = len(ingested.external)
        result.sink_items = len(ingested.candidates)

        self._transition(result, PipelineState.MERGE)
        merged = await SourceWriter(self.source_store, mapping).merge(
            ingested.external,
            ingested.sink_items
        )
        result.imported = merged.imported

        try:
            await reconciler.mark_imported(self.sink_store, ingested.candidates)

            self._transition(result, PipelineState.EXPORT)
            snapshot = await SourceExporter(self.source_store, settings.remove_zip).export()
        except SyncError:
            # The merge already linked new Roam pages; keep those links.
            self._checkpoint(mapping, strict=False)
            raise
        self._checkpoint(mapping)

        self._transition(result, PipelineState.PUSH_AND_SINK_WRITE)
        push_task = asyncio.create_task(PushStage(self.fetch, settings.export_url).push(snapshot))
        writer = SourceToSinkWriter(
            self.sink_store,
            mapping,
            target_notebook=settings.target_database_id,
            dedup_tag=settings.dedup_tag,
            checkpoint=lambda: self._checkpoint(mapping, strict=False)
        )
        try:
            written = await writer.write(snapshot)
        except SinkWriteError as e:
            result.sink_created = e.created
            result.sink_updated = e.updated
            result.pushed = await push_task
            self._checkpoint(mapping, strict=False)
            raise

        result.sink_created = written.created
        result.sink_updated = written.updated
        result.pushed = await push_task

        self._transition(result, PipelineState.CHECKPOINT)
        self._checkpoint(mapping)
        self._transition(result, PipelineState.DONE)

    def _transition(self, result: SyncRunResult, state: PipelineState) -> None:
        logger.info(f"Sync job {result.job_id}: {result.state.value} -> {state.value}")
        result.state = state

    def _load_mapping(self) -> MappingCache:
        path = self.settings.mapping_cache_file
        if not path:
            logger.info("No mapping cache file configured, starting with an empty mapping")
            return MappingCache()
        return MappingCache.load(read_cache_file(path))

    def _checkpoint(self, mapping: MappingCache, strict: bool = True) -> None:
        """
        Save the mapping to the cache file.

        Raises:
            CheckpointError: If strict and the file cannot be written
        """
        path = self.settings.mapping_cache_file
        if not path:
            return
        try:
            write_cache_file(path, mapping.serialize())
        except OSError as e:
            if strict:
                raise CheckpointError(f"Could not save mapping cache to {path}: {e}", e)
            logger.error(f"Could not save mapping cache to {path}: {e}")
            return
        logger.info(f"Saved {len(mapping)} mapping entries to {path}")

    async def aclose(self) -> None:
        await self.fetch.aclose()
        close = getattr(self.sink_store, "aclose", None)
        if close is not None:
            await close()


def create_orchestrator(settings: SyncSettings) -> SyncOrchestrator:
    """Build an orchestrator wired to the local Roam graph and Notion."""
    return SyncOrchestrator(
        settings=settings,
        source_store=LocalRoamGraph(
            graph=settings.graph,
            graph_file=settings.graph_file,
            archive_dir=settings.archive_dir,
            download=settings.did_download
        ),
        sink_store=NotionSinkStore(
            api_token=settings.notion_token,
            tags_property=settings.tags_property
        ),
        fetch=ExternalFetch()
    )
