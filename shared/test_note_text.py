"""Unit tests for body <-> block conversion."""

from shared.models import Block
from shared.note_text import blocks_to_body, body_to_blocks


def test_flat_body():
    blocks = body_to_blocks("first\nsecond")

    assert [b.string for b in blocks] == ["first", "second"]
    assert all(not b.children for b in blocks)


def test_nested_body():
    body = "parent\n  child\n    grandchild\n  sibling\nnext"

    blocks = body_to_blocks(body)

    assert [b.string for b in blocks] == ["parent", "next"]
    assert [c.string for c in blocks[0].children] == ["child", "sibling"]
    assert blocks[0].children[0].children[0].string == "grandchild"


def test_tabs_and_blank_lines():
    blocks = body_to_blocks("parent\n\n\tchild\n   \n")

    assert len(blocks) == 1
    assert blocks[0].children[0].string == "child"


def test_over_indented_line_nests_under_previous():
    blocks = body_to_blocks("a\n      deep")

    assert blocks[0].children[0].string == "deep"


def test_blocks_to_body():
    blocks = [Block(string="a", children=[Block(string="b", children=[Block(string="c")])]), Block(string="d")]

    assert blocks_to_body(blocks) == "a\n  b\n    c\nd"


def test_body_survives_conversion():
    body = "a\n  b\n    c\n  d\ne"

    assert blocks_to_body(body_to_blocks(body)) == body
