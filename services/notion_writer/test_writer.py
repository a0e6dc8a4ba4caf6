"""Unit tests for the Notion sink store."""

import pytest
from unittest.mock import Mock, AsyncMock, patch
from notion_client.errors import APIResponseError

from services.notion_writer.rate_limit import handle_rate_limit, is_rate_limited, _extract_retry_after
from services.notion_writer.writer import NotionSinkStore, build_content_blocks


def page_response(page_id, title, tags=(), archived=False):
    return {
        "id": page_id,
        "archived": archived,
        "parent": {"database_id": "db123"},
        "properties": {
            "Name": {"type": "title", "title": [{"plain_text": title}]},
            "Tags": {"type": "multi_select", "multi_select": [{"name": t} for t in tags]}
        }
    }


def paragraph(block_id, text, has_children=False):
    return {
        "id": block_id,
        "type": "paragraph",
        "has_children": has_children,
        "paragraph": {"rich_text": [{"plain_text": text}]}
    }


def listing(results):
    return {"results": results, "has_more": False, "next_cursor": None}


def rate_limit_error():
    return APIResponseError(
        response=Mock(
            status_code=429,
            headers={'Retry-After': '2'},
            json=lambda: {}
        ),
        message="Rate limited",
        code="rate_limited"
    )


class TestNotionSinkStore:
    """Tests for NotionSinkStore."""

    @pytest.fixture
    def mock_notion_client(self):
        """Create a mock Notion async client."""
        mock_client = Mock()
        mock_client.pages = Mock()
        mock_client.pages.create = AsyncMock()
        mock_client.pages.retrieve = AsyncMock()
        mock_client.pages.update = AsyncMock(return_value={})
        mock_client.databases = Mock()
        mock_client.databases.query = AsyncMock()
        mock_client.databases.retrieve = AsyncMock(return_value={
            "properties": {
                "Title": {"type": "title"},
                "Tags": {"type": "multi_select"}
            }
        })
        mock_client.blocks = Mock()
        mock_client.blocks.delete = AsyncMock(return_value={})
        mock_client.blocks.children = Mock()
        mock_client.blocks.children.list = AsyncMock(return_value=listing([]))
        mock_client.blocks.children.append = AsyncMock(return_value={})
        mock_client.aclose = AsyncMock()
        return mock_client

    @pytest.fixture
    def store(self, mock_notion_client):
        return NotionSinkStore(api_token="test_token", client=mock_notion_client)

    @pytest.mark.asyncio
    async def test_find_notes_filters_by_tag(self, store, mock_notion_client):
        """Test that the query excludes tagged pages and skips archived ones."""
        mock_notion_client.databases.query.return_value = listing([
            page_response("s1", "First"),
            page_response("s2", "Gone", archived=True)
        ])
        mock_notion_client.blocks.children.list.return_value = listing([paragraph("b1", "hello")])

        notes = await store.find_notes("db123", "RoamImported")

        assert [n.sink_id for n in notes] == ["s1"]
        assert notes[0].title == "First"
        assert notes[0].body == "hello"
        assert notes[0].notebook == "db123"

        call_args = mock_notion_client.databases.query.call_args
        assert call_args.kwargs["database_id"] == "db123"
        assert call_args.kwargs["filter"] == {
            "property": "Tags",
            "multi_select": {"does_not_contain": "RoamImported"}
        }

    @pytest.mark.asyncio
    async def test_find_notes_reads_nested_body(self, store, mock_notion_client):
        mock_notion_client.databases.query.return_value = listing([page_response("s1", "First")])

        async def list_children(block_id, start_cursor=None):
            if block_id == "s1":
                return listing([paragraph("b1", "parent", has_children=True), {"id": "d", "type": "divider", "divider": {}}])
            return listing([paragraph("b2", "child")])

        mock_notion_client.blocks.children.list.side_effect = list_children

        notes = await store.find_notes("db123", "RoamImported")

        assert notes[0].body == "parent\n  child"

    @pytest.mark.asyncio
    async def test_create_note(self, store, mock_notion_client):
        mock_notion_client.pages.create.return_value = {"id": "page123"}

        note = await store.create_note("db123", "My Page", "line one\n\nline two", ["RoamImported"])

        assert note.sink_id == "page123"
        assert note.tags == ["RoamImported"]

        call_args = mock_notion_client.pages.create.call_args
        assert call_args.kwargs["parent"] == {"database_id": "db123"}
        properties = call_args.kwargs["properties"]
        assert properties["Title"]["title"][0]["text"]["content"] == "My Page"
        assert properties["Tags"]["multi_select"] == [{"name": "RoamImported"}]
        assert len(call_args.kwargs["children"]) == 2
        mock_notion_client.blocks.children.append.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_note_caches_title_property(self, store, mock_notion_client):
        mock_notion_client.pages.create.return_value = {"id": "page123"}

        await store.create_note("db123", "A", "", [])
        await store.create_note("db123", "B", "", [])

        assert mock_notion_client.databases.retrieve.await_count == 1

    @pytest.mark.asyncio
    async def test_create_note_appends_extra_blocks(self, store, mock_notion_client):
        """Test that bodies over 100 blocks are sent in batches."""
        mock_notion_client.pages.create.return_value = {"id": "page123"}
        body = "\n".join(f"line {i}" for i in range(150))

        await store.create_note("db123", "Long", body, [])

        assert len(mock_notion_client.pages.create.call_args.kwargs["children"]) == 100
        append_args = mock_notion_client.blocks.children.append.call_args
        assert append_args.kwargs["block_id"] == "page123"
        assert len(append_args.kwargs["children"]) == 50

    @pytest.mark.asyncio
    async def test_update_note_replaces_content(self, store, mock_notion_client):
        mock_notion_client.pages.retrieve.return_value = page_response("s1", "Old", tags=["RoamImported"])
        mock_notion_client.blocks.children.list.return_value = listing([paragraph("b1", "old"), paragraph("b2", "older")])

        note = await store.update_note("s1", "New", "fresh")

        assert note.tags == ["RoamImported"]
        assert note.notebook == "db123"
        update_args = mock_notion_client.pages.update.call_args
        assert update_args.kwargs["properties"]["Name"]["title"][0]["text"]["content"] == "New"
        assert "Tags" not in update_args.kwargs["properties"]
        assert [c.kwargs["block_id"] for c in mock_notion_client.blocks.delete.await_args_list] == ["b1", "b2"]
        append_args = mock_notion_client.blocks.children.append.call_args
        assert append_args.kwargs["children"][0]["paragraph"]["rich_text"][0]["text"]["content"] == "fresh"

    @pytest.mark.asyncio
    async def test_add_tag_keeps_existing(self, store, mock_notion_client):
        mock_notion_client.pages.retrieve.return_value = page_response("s1", "T", tags=["work"])

        await store.add_tag("s1", "RoamImported")

        properties = mock_notion_client.pages.update.call_args.kwargs["properties"]
        assert properties["Tags"]["multi_select"] == [{"name": "work"}, {"name": "RoamImported"}]

    @pytest.mark.asyncio
    async def test_add_tag_already_present(self, store, mock_notion_client):
        mock_notion_client.pages.retrieve.return_value = page_response("s1", "T", tags=["RoamImported"])

        await store.add_tag("s1", "RoamImported")

        mock_notion_client.pages.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_note_api_error(self, store, mock_notion_client):
        """Test that non rate limit errors propagate immediately."""
        mock_notion_client.pages.create.side_effect = APIResponseError(
            response=Mock(status_code=400),
            message="Invalid request",
            code="validation_error"
        )

        with pytest.raises(APIResponseError):
            await store.create_note("db123", "T", "", [])

        assert mock_notion_client.pages.create.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limited_request_is_retried(self, store, mock_notion_client):
        mock_notion_client.pages.create.side_effect = [rate_limit_error(), {"id": "page123"}]

        with patch("services.notion_writer.rate_limit.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            note = await store.create_note("db123", "T", "", [])

        assert note.sink_id == "page123"
        assert mock_notion_client.pages.create.await_count == 2
        mock_sleep.assert_awaited_once_with(2.0)


class TestRateLimit:
    """Tests for the rate limit decorator."""

    def test_is_rate_limited(self):
        assert is_rate_limited(rate_limit_error())

    def test_retry_after_default(self):
        error = APIResponseError(
            response=Mock(status_code=429, headers={}),
            message="Rate limited",
            code="rate_limited"
        )

        assert _extract_retry_after(error) == 1.0

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self):
        """Test failure after exceeding max retries."""
        func = AsyncMock(side_effect=rate_limit_error())
        wrapped = handle_rate_limit(max_retries=3)(func)

        with patch("services.notion_writer.rate_limit.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(APIResponseError):
                await wrapped()

        # initial + 3 retries
        assert func.await_count == 4


def test_build_content_blocks_splits_long_lines():
    blocks = build_content_blocks("a" * 4500 + "\n  indented")

    assert len(blocks) == 2
    assert [len(part["text"]["content"]) for part in blocks[0]["paragraph"]["rich_text"]] == [2000, 2000, 500]
    assert blocks[1]["paragraph"]["rich_text"][0]["text"]["content"] == "  indented"
