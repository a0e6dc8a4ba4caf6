"""Conversion between Notion note bodies and Roam block trees.

A body holds one block per line; every two leading spaces (or one tab) nest
the line one level deeper under the closest shallower line above it.
"""

from typing import List, Tuple

from shared.models import Block

INDENT = "  "


def _split_indent(line: str) -> Tuple[int, str]:
    expanded = line.replace("\t", INDENT)
    stripped = expanded.lstrip(" ")
    return (len(expanded) - len(stripped)) // len(INDENT), stripped


def body_to_blocks(body: str) -> List[Block]:
    """Parse a body into a block tree. Blank lines are dropped."""
    roots: List[Block] = []
    stack: List[Tuple[int, Block]] = []

    for line in body.splitlines():
        if not line.strip():
            continue
        depth, text = _split_indent(line.rstrip())
        block = Block(string=text)

        while stack and stack[-1][0] >= depth:
            stack.pop()

        if stack:
            stack[-1][1].children.append(block)
        else:
            roots.append(block)
        stack.append((depth, block))

    return roots


def blocks_to_body(blocks: List[Block], depth: int = 0) -> str:
    """Render a block tree as an indented body."""
    lines = []
    for block in blocks:
        lines.append(f"{INDENT * depth}{block.string}")
        if block.children:
            lines.append(blocks_to_body(block.children, depth + 1))
    return "\n".join(line for line in lines if line)
