"""Roam markup helpers: references, renames, uids and daily page titles."""

import re
import secrets
import string
from datetime import date
from typing import Iterable, Set

from shared.models import Block

UID_ALPHABET = string.ascii_letters + string.digits + "-_"
UID_LENGTH = 9

# [[Page]], #[[Page]] and #Page
PAGE_REF_RE = re.compile(r'#?\[\[([^\[\]]+)\]\]|(?<![\w#])#([\w/-]+)')
BLOCK_REF_RE = re.compile(r'\(\(([\w-]{9})\)\)')


def generate_uid() -> str:
    """Generate a Roam-style nine character uid."""
    return ''.join(secrets.choice(UID_ALPHABET) for _ in range(UID_LENGTH))


def page_references(text: str) -> Set[str]:
    """Titles of the pages referenced in a block string."""
    return {m.group(1) or m.group(2) for m in PAGE_REF_RE.finditer(text)}


def block_references(text: str) -> Set[str]:
    """Block uids referenced with ((uid)) in a block string."""
    return set(BLOCK_REF_RE.findall(text))


def walk_blocks(blocks: Iterable[Block]) -> Iterable[Block]:
    """Depth-first iteration over a block tree."""
    for block in blocks:
        yield block
        yield from walk_blocks(block.children)


def rename_references(text: str, old_title: str, new_title: str) -> str:
    """Rewrite every reference to old_title so it points at new_title."""
    escaped = re.escape(old_title)
    text = re.sub(r'\[\[' + escaped + r'\]\]', lambda _: f'[[{new_title}]]', text)

    def _hashtag(_match: re.Match) -> str:
        if re.fullmatch(r'[\w/-]+', new_title):
            return f'#{new_title}'
        return f'#[[{new_title}]]'

    return re.sub(r'(?<![\w#])#' + escaped + r'(?![\w/-])', _hashtag, text)


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(day % 10, 'th')
    return f"{day}{suffix}"


def daily_page_title(day: date) -> str:
    """Roam daily page title, e.g. "October 19th, 2026"."""
    return f"{day.strftime('%B')} {_ordinal(day.day)}, {day.year}"
