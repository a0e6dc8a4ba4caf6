"""Collaborator interfaces for the two note stores."""

from abc import ABC, abstractmethod
from typing import List, Sequence

from shared.models import ImportItem, SinkNote, SyncSnapshot


class SourceStore(ABC):
    """The Roam side: authoritative for page uids and backlinked content."""

    @property
    @abstractmethod
    def graph_name(self) -> str:
        """Name of the graph, forwarded with pushed snapshots."""

    @property
    @abstractmethod
    def did_download(self) -> bool:
        """Whether exports materialize a fresh local copy of the graph."""

    @abstractmethod
    async def import_notes(self, items: Sequence[ImportItem]) -> List[str]:
        """
        Merge payload items into the graph.

        Returns:
            The confirmed page uid of each item, in payload order
        """

    @abstractmethod
    async def export_snapshot(self, remove_artifacts: bool) -> SyncSnapshot:
        """
        Export the current state of the graph.

        Args:
            remove_artifacts: Delete the local download once the snapshot is read
        """


class SinkStore(ABC):
    """The Notion side: pages grouped in databases ("notebooks")."""

    @abstractmethod
    async def find_notes(self, notebook: str, exclude_tag: str) -> List[SinkNote]:
        """Return every note in the notebook that does not carry exclude_tag."""

    @abstractmethod
    async def create_note(self, notebook: str, title: str, body: str, tags: List[str]) -> SinkNote:
        """Create a note and return it with its assigned sink id."""

    @abstractmethod
    async def update_note(self, sink_id: str, title: str, body: str) -> SinkNote:
        """Overwrite title and body in place. Existing tags are kept."""

    @abstractmethod
    async def add_tag(self, sink_id: str, tag: str) -> None:
        """Attach a tag to a note; a no-op if it is already present."""
