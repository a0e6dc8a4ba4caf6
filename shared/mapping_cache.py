"""Persistent Roam uid <-> Notion page id mapping."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from shared.exceptions import CacheLoadError
from shared.files import atomic_write_text

logger = logging.getLogger(__name__)

RawMapping = Union[str, bytes, List[Any], None]


class MappingReader:
    """Read-only view over a MappingCache."""

    def __init__(self, cache: 'MappingCache'):
        self._cache = cache

    def lookup_by_source(self, source_id: str) -> Optional[str]:
        return self._cache.lookup_by_source(source_id)

    def lookup_by_sink(self, sink_id: str) -> Optional[str]:
        return self._cache.lookup_by_sink(sink_id)

    def __len__(self) -> int:
        return len(self._cache)


class MappingCache:
    """
    Bidirectional 1:1 mapping between Roam page uids and Notion page ids.

    Entries keep insertion order so serialization is deterministic. Lookups
    by either side are dict lookups.
    """

    def __init__(self, pairs: Optional[List[Tuple[str, str]]] = None):
        self._by_source: Dict[str, str] = {}
        self._by_sink: Dict[str, str] = {}
        for source_id, sink_id in pairs or []:
            self.upsert(source_id, sink_id)

    @classmethod
    def load(cls, raw: RawMapping) -> 'MappingCache':
        """
        Load a cache from its serialized form.

        A missing or corrupt cache never aborts the run: it is logged and
        an empty cache is returned instead.

        Args:
            raw: JSON text, an already decoded list of pairs, or None

        Returns:
            MappingCache instance
        """
        try:
            return cls._parse(raw)
        except CacheLoadError as e:
            logger.warning(f"Mapping cache unusable, starting empty: {e}")
            return cls()

    @classmethod
    def _parse(cls, raw: RawMapping) -> 'MappingCache':
        if raw is None:
            raise CacheLoadError("no mapping cache available")

        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise CacheLoadError(f"mapping cache is not valid JSON: {e}", e)

        if not isinstance(raw, list):
            raise CacheLoadError(f"mapping cache must be a JSON array, got {type(raw).__name__}")

        cache = cls()
        skipped = 0
        for entry in raw:
            if (
                isinstance(entry, (list, tuple))
                and len(entry) == 2
                and all(isinstance(part, str) and part for part in entry)
            ):
                cache.upsert(entry[0], entry[1])
            else:
                skipped += 1

        if skipped:
            logger.warning(f"Skipped {skipped} malformed mapping cache entries")

        logger.info(f"Loaded {len(cache)} mapping entries")
        return cache

    def lookup_by_source(self, source_id: str) -> Optional[str]:
        return self._by_source.get(source_id)

    def lookup_by_sink(self, sink_id: str) -> Optional[str]:
        return self._by_sink.get(sink_id)

    def upsert(self, source_id: str, sink_id: str) -> bool:
        """
        Link a Roam uid to a Notion page id.

        Repeating an existing pair is a no-op. A new sink id for a known
        source id replaces the link, and a sink id already linked to another
        source id is moved, so both directions stay 1:1.

        Returns:
            True if the mapping changed
        """
        if self._by_source.get(source_id) == sink_id:
            return False

        previous_sink = self._by_source.get(source_id)
        if previous_sink is not None:
            del self._by_sink[previous_sink]

        previous_source = self._by_sink.get(sink_id)
        if previous_source is not None:
            logger.warning(
                f"Notion page {sink_id} moves from Roam uid {previous_source} to {source_id}"
            )
            del self._by_source[previous_source]

        self._by_source[source_id] = sink_id
        self._by_sink[sink_id] = source_id
        return True

    def read_only(self) -> MappingReader:
        return MappingReader(self)

    def serialize(self) -> str:
        return json.dumps([[s, k] for s, k in self._by_source.items()], indent=2)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._by_source.items()))

    def __len__(self) -> int:
        return len(self._by_source)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._by_source


def read_cache_file(path: Union[str, Path]) -> Optional[str]:
    """Read the cache file, returning None when it is missing or unreadable."""
    try:
        return Path(path).read_text(encoding='utf-8')
    except FileNotFoundError:
        logger.info(f"Mapping cache file {path} does not exist yet")
        return None
    except OSError as e:
        logger.warning(f"Could not read mapping cache file {path}: {e}")
        return None


def write_cache_file(path: Union[str, Path], raw: str) -> None:
    """Write the cache file atomically so a crash never leaves it truncated."""
    atomic_write_text(path, raw)
