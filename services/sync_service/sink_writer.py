"""Writing the Roam snapshot into Notion."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from shared.exceptions import SinkWriteError
from shared.mapping_cache import MappingCache
from shared.models import SyncSnapshot
from shared.note_text import blocks_to_body
from shared.stores import SinkStore

logger = logging.getLogger(__name__)


@dataclass
class SinkWriteResult:
    """Counts of a Notion write."""
    created: int = 0
    updated: int = 0
    skipped: int = 0


class SourceToSinkWriter:
    """Upserts every Roam page into the target Notion database."""

    def __init__(
        self,
        sink_store: SinkStore,
        mapping: MappingCache,
        target_notebook: str,
        dedup_tag: str,
        checkpoint: Optional[Callable[[], None]] = None
    ):
        """
        Initialize the writer.

        Args:
            sink_store: Notion store
            mapping: Identity mapping, extended with every page created here
            target_notebook: Database receiving new pages
            dedup_tag: Tag attached to new pages so they are never imported back
            checkpoint: Called after each new link, to persist the mapping
        """
        self.sink_store = sink_store
        self.mapping = mapping
        self.target_notebook = target_notebook
        self.dedup_tag = dedup_tag
        self.checkpoint = checkpoint

    async def write(self, snapshot: SyncSnapshot) -> SinkWriteResult:
        """
        Update linked Notion pages in place and create the missing ones.

        Raises:
            SinkWriteError: On the first failing page, with the counts so far
        """
        result = SinkWriteResult()

        for note in snapshot.notes:
            if not note.source_id:
                logger.warning(f"Skipping Roam page without uid: {note.title}")
                result.skipped += 1
                continue

            body = blocks_to_body(note.blocks)
            sink_id = self.mapping.lookup_by_source(note.source_id)

            try:
                if sink_id:
                    await self.sink_store.update_note(sink_id, note.title, body)
                    result.updated += 1
                    continue

                created = await self.sink_store.create_note(
                    self.target_notebook,
                    note.title,
                    body,
                    [self.dedup_tag]
                )
            except Exception as e:
                raise SinkWriteError(
                    f"Failed to write Roam page {note.source_id} ({note.title}) to Notion: {e}",
                    e,
                    created=result.created,
                    updated=result.updated
                )

            self.mapping.upsert(note.source_id, created.sink_id)
            result.created += 1
            if self.checkpoint:
                self.checkpoint()

        logger.info(
            f"Notion write finished: {result.created} created, "
            f"{result.updated} updated, {result.skipped} skipped"
        )
        return result
