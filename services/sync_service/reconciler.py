"""Shaping Notion notes into Roam import items."""

import logging
from datetime import date
from typing import Callable, List, Sequence

from services.roam_graph.markup import daily_page_title
from shared.exceptions import SinkWriteError
from shared.mapping_cache import MappingReader
from shared.models import Block, ImportItem, NoteCreate, NoteUpdate, SinkNote, SourceNote
from shared.note_text import body_to_blocks
from shared.stores import SinkStore

logger = logging.getLogger(__name__)


class SinkReconciler:
    """Turns Notion notes into Roam payload items and tags them once imported."""

    def __init__(
        self,
        mapping: MappingReader,
        dedup_tag: str,
        daily_note_links: bool = True,
        today: Callable[[], date] = date.today
    ):
        """
        Initialize the reconciler.

        Args:
            mapping: Read-only view of the identity mapping
            dedup_tag: Tag marking notes that were already imported
            daily_note_links: Link newly imported pages from today's daily page
            today: Clock used for the daily page title
        """
        self.mapping = mapping
        self.dedup_tag = dedup_tag
        self.daily_note_links = daily_note_links
        self.today = today

    def reconcile(self, notes: Sequence[SinkNote]) -> List[ImportItem]:
        """
        Shape Notion notes as Roam import items.

        A note already linked to a Roam page becomes an update of that page;
        any other note becomes a create, linked once Roam confirms its uid.

        Args:
            notes: Eligible Notion notes

        Returns:
            Import items, in the order of the notes
        """
        items: List[ImportItem] = []
        created_titles = []

        for note in notes:
            source_note = SourceNote(
                source_id=self.mapping.lookup_by_sink(note.sink_id),
                title=note.title,
                blocks=body_to_blocks(note.body)
            )
            if source_note.source_id:
                logger.debug(f"Notion page {note.sink_id} updates Roam page {source_note.source_id}")
                items.append(NoteUpdate(note=source_note, origin_sink_id=note.sink_id))
            else:
                logger.debug(f"Notion page {note.sink_id} becomes a new Roam page")
                items.append(NoteCreate(note=source_note, origin_sink_id=note.sink_id))
                created_titles.append(note.title)

        if created_titles and self.daily_note_links:
            items.append(self._daily_links(created_titles))

        return items

    async def mark_imported(self, sink_store: SinkStore, notes: Sequence[SinkNote]) -> None:
        """
        Tag every imported note with the dedup tag.

        Must only run after the Roam merge succeeded, so a failed merge
        leaves the notes eligible for the next run.

        Raises:
            SinkWriteError: If tagging a note fails
        """
        for note in notes:
            if self.dedup_tag in note.tags:
                continue
            try:
                await sink_store.add_tag(note.sink_id, self.dedup_tag)
            except Exception as e:
                raise SinkWriteError(f"Failed to tag Notion page {note.sink_id}: {e}", e)
            note.tags.append(self.dedup_tag)

        logger.info(f"Marked {len(notes)} Notion pages as imported")

    def _daily_links(self, titles: List[str]) -> NoteCreate:
        return NoteCreate(
            note=SourceNote(
                source_id=None,
                title=daily_page_title(self.today()),
                blocks=[Block(string=f"[[{title}]]") for title in titles]
            )
        )
