"""Pydantic models for the Roam JSON export / import format."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models import Block, SourceNote


class RoamBlock(BaseModel):
    """A block as it appears in a Roam JSON export."""

    model_config = ConfigDict(extra="allow")

    string: str = ""
    uid: Optional[str] = None
    children: List['RoamBlock'] = Field(default_factory=list)

    def to_block(self) -> Block:
        return Block(
            string=self.string,
            uid=self.uid,
            children=[child.to_block() for child in self.children]
        )


class RoamPage(BaseModel):
    """A page as it appears in a Roam JSON export."""

    model_config = ConfigDict(extra="allow")

    title: str = Field(..., min_length=1)
    uid: Optional[str] = None
    children: List[RoamBlock] = Field(default_factory=list)

    def to_source_note(self) -> SourceNote:
        return SourceNote(
            source_id=self.uid,
            title=self.title,
            blocks=[child.to_block() for child in self.children]
        )


RoamBlock.model_rebuild()
