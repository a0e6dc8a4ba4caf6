"""Roam graph kept as a JSON export on disk."""

import json
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

from pydantic import TypeAdapter, ValidationError

from services.roam_graph.markup import (
    block_references,
    generate_uid,
    page_references,
    rename_references,
    walk_blocks,
)
from services.roam_graph.schema import RoamPage
from shared.files import atomic_write_text
from shared.models import Block, ImportItem, NoteCreate, NoteUpdate, SourceNote, SyncSnapshot
from shared.stores import SourceStore

logger = logging.getLogger(__name__)

_pages_adapter = TypeAdapter(List[RoamPage])


class _GraphIndex:
    """Lookup tables over the raw page dicts of a graph."""

    def __init__(self, pages: List[Dict[str, Any]]):
        self.by_uid: Dict[str, Dict[str, Any]] = {}
        self.by_title: Dict[str, Dict[str, Any]] = {}
        self.uids: Set[str] = set()
        for page in pages:
            self.add_page(page)

    def add_page(self, page: Dict[str, Any]) -> None:
        self.by_title[page["title"]] = page
        if page.get("uid"):
            self.by_uid[page["uid"]] = page
            self.uids.add(page["uid"])
        self._collect_block_uids(page.get("children", []))

    def _collect_block_uids(self, blocks: List[Dict[str, Any]]) -> None:
        for block in blocks:
            if block.get("uid"):
                self.uids.add(block["uid"])
            self._collect_block_uids(block.get("children", []))

    def new_uid(self, preferred: Optional[str] = None) -> str:
        uid = preferred if preferred and preferred not in self.uids else generate_uid()
        while uid in self.uids:
            uid = generate_uid()
        self.uids.add(uid)
        return uid


class LocalRoamGraph(SourceStore):
    """
    A Roam graph stored as a Roam JSON export file.

    Imports merge pages into the file the way Roam's importer does: titles
    are unique, so a new page whose title already exists merges into that
    page. Exports "download" the graph into a timestamped zip archive in
    archive_dir and read the snapshot back from it.
    """

    def __init__(
        self,
        graph: str,
        graph_file: str,
        archive_dir: str = ".",
        download: bool = True
    ):
        """
        Initialize the graph store.

        Args:
            graph: Graph name
            graph_file: Path of the Roam JSON file holding the graph
            archive_dir: Directory receiving downloaded archives
            download: Whether exports produce a fresh archive, or reuse the latest one
        """
        self._graph = graph
        self.graph_file = Path(graph_file)
        self.archive_dir = Path(archive_dir)
        self.download = download

    @property
    def graph_name(self) -> str:
        return self._graph

    @property
    def did_download(self) -> bool:
        return self.download

    async def import_notes(self, items: Sequence[ImportItem]) -> List[str]:
        """
        Merge payload items into the graph file.

        Args:
            items: Create and update items, applied in order

        Returns:
            The page uid each item was merged into
        """
        pages = self._load_pages()
        index = _GraphIndex(pages)

        confirmed = [self._merge_item(pages, index, item) for item in items]

        atomic_write_text(self.graph_file, json.dumps(pages, indent=2, ensure_ascii=False))
        logger.info(f"Imported {len(items)} items into graph {self._graph}")
        return confirmed

    async def export_snapshot(self, remove_artifacts: bool) -> SyncSnapshot:
        """
        Export the whole graph.

        Args:
            remove_artifacts: Delete the archive once the snapshot is read

        Returns:
            SyncSnapshot of the graph
        """
        archive = self._download() if self.download else self._latest_archive()

        if archive is not None:
            raw = self._read_archive(archive)
        else:
            logger.info(f"No archive found in {self.archive_dir}, reading {self.graph_file}")
            raw = self._load_pages()

        notes = build_source_notes(raw)

        if remove_artifacts and archive is not None:
            archive.unlink()
            logger.info(f"Removed archive {archive}")

        return SyncSnapshot(
            graph_name=self._graph,
            notes=notes,
            raw=raw,
            captured_at=datetime.now(timezone.utc)
        )

    def _load_pages(self) -> List[Dict[str, Any]]:
        if not self.graph_file.exists():
            logger.warning(f"Graph file {self.graph_file} does not exist, starting from an empty graph")
            return []
        with open(self.graph_file, 'r', encoding='utf-8') as f:
            pages = json.load(f)
        _validate_pages(pages)
        return pages

    def _download(self) -> Path:
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime('%Y-%m-%d-%H-%M-%S-%f')
        archive = self.archive_dir / f"{self._graph}-{stamp}.zip"
        pages = self._load_pages()
        with zipfile.ZipFile(archive, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(f"{self._graph}.json", json.dumps(pages, ensure_ascii=False))
        logger.info(f"Downloaded graph {self._graph} to {archive}")
        return archive

    def _latest_archive(self) -> Optional[Path]:
        if not self.archive_dir.is_dir():
            return None
        archives = sorted(self.archive_dir.glob(f"{self._graph}-*.zip"))
        return archives[-1] if archives else None

    def _read_archive(self, archive: Path) -> List[Dict[str, Any]]:
        with zipfile.ZipFile(archive) as zf:
            names = [name for name in zf.namelist() if name.endswith('.json')]
            if not names:
                raise ValueError(f"Archive {archive} contains no JSON export")
            pages = json.loads(zf.read(names[0]).decode('utf-8'))
        _validate_pages(pages)
        return pages

    def _merge_item(
        self,
        pages: List[Dict[str, Any]],
        index: _GraphIndex,
        item: ImportItem
    ) -> str:
        note = item.note
        page = None

        if isinstance(item, NoteUpdate):
            page = index.by_uid.get(note.source_id)
            if page is None:
                logger.warning(f"Page {note.source_id} ({note.title}) not found, merging by title")
        elif not isinstance(item, NoteCreate):
            raise TypeError(f"Unsupported import item: {type(item).__name__}")

        if page is None:
            page = index.by_title.get(note.title)

        if page is None:
            preferred = note.source_id if isinstance(item, NoteUpdate) else None
            page = {"title": note.title, "uid": index.new_uid(preferred), "children": []}
            pages.append(page)
            index.add_page(page)
            logger.info(f"Created page {page['uid']}: {note.title}")
        elif page["title"] != note.title:
            self._rename_page(pages, index, page, note.title)

        if not page.get("uid"):
            page["uid"] = index.new_uid()
            index.by_uid[page["uid"]] = page

        _merge_blocks(page.setdefault("children", []), note.blocks, index)
        return page["uid"]

    def _rename_page(
        self,
        pages: List[Dict[str, Any]],
        index: _GraphIndex,
        page: Dict[str, Any],
        new_title: str
    ) -> None:
        old_title = page["title"]
        if new_title in index.by_title:
            logger.warning(f"Cannot rename '{old_title}' to '{new_title}': title already taken")
            return

        page["title"] = new_title
        del index.by_title[old_title]
        index.by_title[new_title] = page

        # References are by title in Roam, so follow the rename everywhere
        for other in pages:
            _rewrite_references(other.get("children", []), old_title, new_title)
        logger.info(f"Renamed page {page.get('uid')} from '{old_title}' to '{new_title}'")


def _validate_pages(pages: Any) -> None:
    try:
        _pages_adapter.validate_python(pages)
    except ValidationError as e:
        raise ValueError(f"Graph is not a valid Roam JSON export: {e}") from e


def _merge_blocks(
    existing: List[Dict[str, Any]],
    incoming: List[Block],
    index: _GraphIndex
) -> None:
    """
    Merge blocks into a sibling list. Existing blocks are never removed.

    Each existing sibling absorbs at most one incoming block, so repeated
    lines stay separate blocks.
    """
    claimed: Set[int] = set()
    for block in incoming:
        unclaimed = [b for b in existing if id(b) not in claimed]
        match = None
        if block.uid:
            match = next((b for b in unclaimed if b.get("uid") == block.uid), None)
        if match is None:
            match = next((b for b in unclaimed if b.get("string") == block.string), None)

        if match is None:
            match = {"string": block.string, "uid": index.new_uid(block.uid)}
            existing.append(match)
        else:
            match["string"] = block.string
        claimed.add(id(match))

        if block.children:
            _merge_blocks(match.setdefault("children", []), block.children, index)


def _rewrite_references(blocks: List[Dict[str, Any]], old_title: str, new_title: str) -> None:
    for block in blocks:
        if "string" in block:
            block["string"] = rename_references(block["string"], old_title, new_title)
        _rewrite_references(block.get("children", []), old_title, new_title)


def build_source_notes(raw: List[Dict[str, Any]]) -> List[SourceNote]:
    """Convert raw export pages into SourceNotes with resolved page references."""
    pages = _pages_adapter.validate_python(raw)
    uid_by_title = {page.title: page.uid for page in pages if page.uid}

    page_of_block: Dict[str, str] = {}
    notes = []
    for page in pages:
        note = page.to_source_note()
        notes.append(note)
        if note.source_id:
            for block in walk_blocks(note.blocks):
                if block.uid:
                    page_of_block[block.uid] = note.source_id

    for note in notes:
        refs: Set[str] = set()
        for block in walk_blocks(note.blocks):
            for title in page_references(block.string):
                if title in uid_by_title:
                    refs.add(uid_by_title[title])
            for uid in block_references(block.string):
                if uid in page_of_block:
                    refs.add(page_of_block[uid])
        refs.discard(note.source_id)
        note.page_refs = refs

    return notes
