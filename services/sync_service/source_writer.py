"""Merging the ingested payload into Roam."""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from shared.exceptions import MergeError
from shared.mapping_cache import MappingCache
from shared.models import ImportItem, NoteCreate, NoteUpdate
from shared.stores import SourceStore

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of a merge."""
    imported: int = 0
    created: int = 0
    updated: int = 0
    linked: int = 0


class SourceWriter:
    """Applies external and Notion-derived items to Roam in one import."""

    def __init__(self, source_store: SourceStore, mapping: MappingCache):
        self.source_store = source_store
        self.mapping = mapping

    async def merge(
        self,
        external: Sequence[ImportItem],
        sink_items: Sequence[ImportItem]
    ) -> MergeResult:
        """
        Import external items first, then Notion-derived items.

        Notes created in Roam from a Notion page are linked in the mapping
        with the uid Roam confirms. An empty payload does not touch Roam.

        Raises:
            MergeError: If Roam rejects the payload
        """
        payload: List[ImportItem] = list(external) + list(sink_items)
        if not payload:
            logger.info("Nothing to import into Roam")
            return MergeResult()

        result = MergeResult(imported=len(payload))
        for item in payload:
            if isinstance(item, NoteCreate):
                result.created += 1
            elif isinstance(item, NoteUpdate):
                if not item.note.source_id:
                    raise MergeError(f"Update for '{item.note.title}' has no Roam uid")
                result.updated += 1
            else:
                raise MergeError(f"Unsupported import item: {type(item).__name__}")

        logger.info(f"Importing {len(payload)} items into Roam ({result.created} new, {result.updated} updates)")
        try:
            confirmed = await self.source_store.import_notes(payload)
        except Exception as e:
            raise MergeError(f"Roam import failed: {e}", e)

        if len(confirmed) != len(payload) or not all(confirmed):
            raise MergeError(
                f"Roam confirmed {len(confirmed)} uids for {len(payload)} imported items"
            )

        for item, source_id in zip(payload, confirmed):
            if item.origin_sink_id and self.mapping.upsert(source_id, item.origin_sink_id):
                result.linked += 1

        logger.info(f"Linked {result.linked} Notion pages to Roam pages")
        return result
