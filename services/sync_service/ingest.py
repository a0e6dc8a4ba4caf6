"""Gathering material to import into Roam."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from services.roam_graph.schema import RoamPage
from services.sync_service.reconciler import SinkReconciler
from shared.exceptions import IngestError
from shared.http_fetch import ExternalFetch
from shared.models import ImportItem, NoteCreate, NoteUpdate, SinkNote
from shared.stores import SinkStore

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Output of the ingest stage."""
    external: List[ImportItem] = field(default_factory=list)
    sink_items: List[ImportItem] = field(default_factory=list)
    candidates: List[SinkNote] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.external and not self.sink_items


def parse_external_payload(data: Any) -> List[ImportItem]:
    """
    Shape an external JSON payload as Roam import items.

    The payload is a list of Roam pages, or a single page. Pages carrying a
    uid update that page, the others are created.

    Raises:
        IngestError: If the payload does not have that shape
    """
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise IngestError(f"External payload must be a list of pages, got {type(data).__name__}")

    items: List[ImportItem] = []
    for position, entry in enumerate(data):
        try:
            page = RoamPage.model_validate(entry)
        except ValidationError as e:
            raise IngestError(f"External payload item {position} is not a Roam page: {e}", e)

        note = page.to_source_note()
        items.append(NoteUpdate(note=note) if note.source_id else NoteCreate(note=note))
    return items


class IngestStage:
    """Runs the external payload and Notion producers concurrently."""

    def __init__(
        self,
        fetch: ExternalFetch,
        sink_store: SinkStore,
        reconciler: SinkReconciler,
        private_api_url: Optional[str],
        source_notebook: Optional[str],
        dedup_tag: str
    ):
        self.fetch = fetch
        self.sink_store = sink_store
        self.reconciler = reconciler
        self.private_api_url = private_api_url
        self.source_notebook = source_notebook
        self.dedup_tag = dedup_tag

    async def run(self) -> IngestResult:
        """
        Run both producers and wait for both of them.

        Returns:
            IngestResult with external items first, then Notion-derived items

        Raises:
            IngestError: If either producer failed
        """
        external, sink = await asyncio.gather(
            self._fetch_external(),
            self._fetch_sink_notes(),
            return_exceptions=True
        )

        for label, outcome in (("external payload", external), ("Notion query", sink)):
            if isinstance(outcome, IngestError):
                raise outcome
            if isinstance(outcome, BaseException):
                raise IngestError(f"{label} failed: {outcome}", outcome)

        candidates = sink
        result = IngestResult(
            external=external,
            sink_items=self.reconciler.reconcile(candidates),
            candidates=candidates
        )
        logger.info(
            f"Ingested {len(result.external)} external items and "
            f"{len(result.candidates)} Notion pages"
        )
        return result

    async def _fetch_external(self) -> List[ImportItem]:
        if not self.private_api_url:
            return []

        data = await self.fetch.get_json(self.private_api_url)
        items = parse_external_payload(data)
        logger.info(f"External payload: {len(items)} pages")
        logger.debug(f"External payload contents: {data}")
        return items

    async def _fetch_sink_notes(self) -> List[SinkNote]:
        if not self.source_notebook:
            logger.info("No source database configured, skipping Notion import")
            return []
        return await self.sink_store.find_notes(self.source_notebook, exclude_tag=self.dedup_tag)
