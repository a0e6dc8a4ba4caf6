"""Notion Writer - Notion databases as the sink side of the sync."""

import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from notion_client import AsyncClient
from notion_client.helpers import async_collect_paginated_api

from services.notion_writer.rate_limit import handle_rate_limit
from shared.models import SinkNote
from shared.stores import SinkStore

logger = logging.getLogger(__name__)

MAX_BLOCKS_PER_REQUEST = 100
MAX_TEXT_LENGTH = 2000


class NotionSinkStore(SinkStore):
    """Reads and writes notes as pages of Notion databases."""

    def __init__(
        self,
        api_token: Optional[str] = None,
        tags_property: str = "Tags",
        client: Optional[AsyncClient] = None
    ):
        """
        Initialize the Notion sink.

        Args:
            api_token: Notion API integration token
            tags_property: Name of the multi-select property holding tags
            client: Optional preconfigured client
        """
        self.client = client or AsyncClient(auth=api_token)
        self.tags_property = tags_property
        self._title_properties: Dict[str, str] = {}

    async def find_notes(self, notebook: str, exclude_tag: str) -> List[SinkNote]:
        """
        Query a database for pages that do not carry exclude_tag.

        Args:
            notebook: Notion database ID
            exclude_tag: Tag that disqualifies a page

        Returns:
            List of SinkNote with their bodies loaded
        """
        logger.info(f"Querying database {notebook} for pages without tag '{exclude_tag}'")
        pages = await async_collect_paginated_api(
            partial(self._call, self.client.databases.query),
            database_id=notebook,
            filter={
                "property": self.tags_property,
                "multi_select": {"does_not_contain": exclude_tag}
            }
        )

        notes = []
        for page in pages:
            if page.get("archived") or page.get("in_trash"):
                continue
            body = await self._read_body(page["id"])
            notes.append(self._to_sink_note(page, body, notebook))

        logger.info(f"Found {len(notes)} pages eligible for import in {notebook}")
        return notes

    async def create_note(self, notebook: str, title: str, body: str, tags: List[str]) -> SinkNote:
        """
        Create a page in a database.

        Args:
            notebook: Notion database ID
            title: Page title
            body: Page body, one paragraph per line
            tags: Tags for the multi-select property

        Returns:
            The created SinkNote
        """
        title_property = await self._title_property(notebook)
        properties = self._build_page_properties(title, title_property)
        properties[self.tags_property] = {
            "multi_select": [{"name": tag} for tag in tags]
        }

        children = build_content_blocks(body)
        logger.info(f"Creating Notion page: {title}")
        response = await self._call(
            self.client.pages.create,
            parent={"database_id": notebook},
            properties=properties,
            children=children[:MAX_BLOCKS_PER_REQUEST]
        )
        page_id = response["id"]
        await self._append_blocks(page_id, children[MAX_BLOCKS_PER_REQUEST:])

        logger.info(f"Successfully created Notion page: {page_id}")
        return SinkNote(sink_id=page_id, title=title, body=body, tags=list(tags), notebook=notebook)

    async def update_note(self, sink_id: str, title: str, body: str) -> SinkNote:
        """
        Overwrite a page's title and content. Tags are left untouched.

        Args:
            sink_id: Notion page ID
            title: New title
            body: New body

        Returns:
            The updated SinkNote
        """
        page = await self._call(self.client.pages.retrieve, page_id=sink_id)
        title_property = _find_title_property(page.get("properties", {}))

        logger.info(f"Updating Notion page: {sink_id}")
        await self._call(
            self.client.pages.update,
            page_id=sink_id,
            properties=self._build_page_properties(title, title_property)
        )

        existing = await async_collect_paginated_api(
            partial(self._call, self.client.blocks.children.list),
            block_id=sink_id
        )
        for block in existing:
            await self._call(self.client.blocks.delete, block_id=block["id"])
        await self._append_blocks(sink_id, build_content_blocks(body))

        logger.info(f"Successfully updated Notion page: {sink_id}")
        return SinkNote(
            sink_id=sink_id,
            title=title,
            body=body,
            tags=self._read_tags(page),
            notebook=page.get("parent", {}).get("database_id", "")
        )

    async def add_tag(self, sink_id: str, tag: str) -> None:
        """Attach a tag to a page, keeping the tags it already has."""
        page = await self._call(self.client.pages.retrieve, page_id=sink_id)
        tags = self._read_tags(page)
        if tag in tags:
            return

        await self._call(
            self.client.pages.update,
            page_id=sink_id,
            properties={
                self.tags_property: {
                    "multi_select": [{"name": name} for name in tags + [tag]]
                }
            }
        )
        logger.info(f"Tagged Notion page {sink_id} with '{tag}'")

    async def aclose(self) -> None:
        await self.client.aclose()

    @handle_rate_limit(max_retries=3)
    async def _call(self, method: Callable, **kwargs) -> Any:
        # Retries apply per request.
        return await method(**kwargs)

    async def _title_property(self, database_id: str) -> str:
        if database_id not in self._title_properties:
            database = await self._call(self.client.databases.retrieve, database_id=database_id)
            self._title_properties[database_id] = _find_title_property(database.get("properties", {}))
        return self._title_properties[database_id]

    async def _append_blocks(self, block_id: str, children: List[Dict[str, Any]]) -> None:
        for start in range(0, len(children), MAX_BLOCKS_PER_REQUEST):
            await self._call(
                self.client.blocks.children.append,
                block_id=block_id,
                children=children[start:start + MAX_BLOCKS_PER_REQUEST]
            )

    async def _read_body(self, block_id: str, depth: int = 0) -> str:
        blocks = await async_collect_paginated_api(
            partial(self._call, self.client.blocks.children.list),
            block_id=block_id
        )
        lines = []
        for block in blocks:
            text = _plain_text(block)
            if text is not None:
                lines.append("  " * depth + text)
            if block.get("has_children"):
                nested = await self._read_body(block["id"], depth + 1)
                if nested:
                    lines.append(nested)
        return "\n".join(lines)

    def _read_tags(self, page: Dict[str, Any]) -> List[str]:
        prop = page.get("properties", {}).get(self.tags_property, {})
        return [option["name"] for option in prop.get("multi_select", [])]

    def _to_sink_note(self, page: Dict[str, Any], body: str, notebook: str) -> SinkNote:
        properties = page.get("properties", {})
        title_prop = properties.get(_find_title_property(properties), {})
        title = "".join(part.get("plain_text", "") for part in title_prop.get("title", []))
        return SinkNote(
            sink_id=page["id"],
            title=title or "Untitled",
            body=body,
            tags=self._read_tags(page),
            notebook=notebook
        )

    def _build_page_properties(self, title: str, title_property_name: str = "Name") -> Dict[str, Any]:
        """
        Build Notion page properties for a title.

        Args:
            title: Page title
            title_property_name: Name of the title property in the database

        Returns:
            Dictionary of Notion page properties
        """
        return {
            title_property_name: {
                "title": [
                    {
                        "type": "text",
                        "text": {"content": title[:MAX_TEXT_LENGTH] or "Untitled"}
                    }
                ]
            }
        }


def _find_title_property(properties: Dict[str, Any]) -> str:
    for name, config in properties.items():
        if config.get("type") == "title":
            return name
    logger.warning("No title property found, using default: Name")
    return "Name"


def _plain_text(block: Dict[str, Any]) -> Optional[str]:
    content = block.get(block.get("type", ""), {})
    if not isinstance(content, dict) or "rich_text" not in content:
        return None
    return "".join(part.get("plain_text", "") for part in content["rich_text"])


def build_content_blocks(body: str) -> List[Dict[str, Any]]:
    """
    Build Notion paragraph blocks from a body, one per non-empty line.

    Indentation is kept inside the text so the body reads back unchanged.
    Lines longer than Notion's rich text limit are split into several
    text objects of the same paragraph.
    """
    blocks = []
    for line in body.split("\n"):
        if not line.strip():
            continue
        chunks = [line[i:i + MAX_TEXT_LENGTH] for i in range(0, len(line), MAX_TEXT_LENGTH)]
        blocks.append({
            "object": "block",
            "type": "paragraph",
            "paragraph": {
                "rich_text": [
                    {"type": "text", "text": {"content": chunk}}
                    for chunk in chunks
                ]
            }
        })
    return blocks
