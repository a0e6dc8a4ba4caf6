"""Shared data models for the Roam to Notion sync application."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union


@dataclass
class Block:
    """A Roam block: a line of text with nested child blocks."""
    string: str
    uid: Optional[str] = None
    children: List['Block'] = field(default_factory=list)


@dataclass
class SourceNote:
    """Represents a page in the Roam graph."""
    source_id: Optional[str]
    title: str
    blocks: List[Block] = field(default_factory=list)
    page_refs: Set[str] = field(default_factory=set)


@dataclass
class SinkNote:
    """Represents a page in a Notion database."""
    sink_id: str
    title: str
    body: str
    tags: List[str]
    notebook: str


@dataclass
class NoteCreate:
    """Payload item for a note Roam has not assigned an id to yet."""
    note: SourceNote
    origin_sink_id: Optional[str] = None


@dataclass
class NoteUpdate:
    """Payload item for a note that already exists in Roam."""
    note: SourceNote
    origin_sink_id: Optional[str] = None


ImportItem = Union[NoteCreate, NoteUpdate]


@dataclass
class SyncSnapshot:
    """Full export of the Roam graph at a point in time."""
    graph_name: str
    notes: List[SourceNote]
    raw: List[Dict[str, Any]]
    captured_at: datetime


class PipelineState(str, Enum):
    """States of a sync run."""
    INIT = "init"
    INGEST = "ingest"
    MERGE = "merge"
    EXPORT = "export"
    PUSH_AND_SINK_WRITE = "push_and_sink_write"
    CHECKPOINT = "checkpoint"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class SyncRunResult:
    """Outcome of a sync run."""
    job_id: str
    state: PipelineState = PipelineState.INIT
    error_kind: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[PipelineState] = None
    external_items: int = 0
    sink_items: int = 0
    imported: int = 0
    sink_created: int = 0
    sink_updated: int = 0
    pushed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.state.value,
            "error_kind": self.error_kind,
            "error": self.error,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "summary": {
                "external_items": self.external_items,
                "sink_items": self.sink_items,
                "imported": self.imported,
                "sink_created": self.sink_created,
                "sink_updated": self.sink_updated,
                "pushed": self.pushed
            }
        }
