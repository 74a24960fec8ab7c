"""Keyed merge of rustdoc's search-index.js.

rustdoc writes one search index per `cargo doc` run, with one line per crate
wrapped in a small JavaScript prelude and epilogue. Two layouts exist in the
wild::

    "alpha":{"doc":"...",...},\\         (older rustdoc, object keyed by crate)
    ["alpha",{"doc":"...",...}],\\       (newer rustdoc, Map built from pairs)

Merging keeps the destination's prelude and epilogue and takes the union of
crate lines, incoming lines replacing existing ones with the same key.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from docmerge.utils.logging import get_logger

logger = get_logger(__name__)

OBJECT_KEY = re.compile(r'^"([A-Za-z0-9_-]+)":')
PAIR_KEY = re.compile(r'^\["([A-Za-z0-9_-]+)",')
DOC_FIELD = re.compile(r'"doc":"([^"]+)"')


@dataclass
class SearchIndex:
    """A parsed search index: prelude, crate lines, epilogue."""

    header: list[str]
    entries: dict[str, str]
    footer: list[str]
    layout: str
    continuation: bool = True

    @classmethod
    def parse(cls, text: str) -> "SearchIndex | None":
        """Parse search-index.js text, or return None if it is not recognizable."""
        lines = text.split("\n")
        positions: list[int] = []
        layout = None
        keys: list[str] = []

        for i, line in enumerate(lines):
            for name, pattern in (("object", OBJECT_KEY), ("pair", PAIR_KEY)):
                match = pattern.match(line)
                if match:
                    if layout is not None and layout != name:
                        return None
                    layout = name
                    positions.append(i)
                    keys.append(match.group(1))
                    break

        if not positions:
            return None

        first, last = positions[0], positions[-1]
        if positions != list(range(first, last + 1)):
            # Something other than crate lines sits between them
            return None

        entries: dict[str, str] = {}
        continuation = True
        for key, pos in zip(keys, positions):
            body = lines[pos].rstrip()
            if body.endswith("\\"):
                body = body[:-1]
            else:
                continuation = False
            entries[key] = body.rstrip().rstrip(",")

        return cls(
            header=lines[:first],
            entries=entries,
            footer=lines[last + 1:],
            layout=layout,
            continuation=continuation,
        )

    def merge(self, other: "SearchIndex") -> list[str]:
        """Fold ``other``'s crates into this index.

        Returns:
            Crate keys that were added or whose line changed.
        """
        changed = []
        for key, body in other.entries.items():
            if self.entries.get(key) != body:
                self.entries[key] = body
                changed.append(key)
        return changed

    def render(self) -> str:
        keys = sorted(self.entries)
        tail = "\\" if self.continuation else ""
        lines = []
        for i, key in enumerate(keys):
            sep = "," if i < len(keys) - 1 else ""
            lines.append(f"{self.entries[key]}{sep}{tail}")
        return "\n".join(self.header + lines + self.footer)

    def descriptions(self) -> dict[str, str]:
        """Short crate descriptions, where the index carries them."""
        found = {}
        for key, body in self.entries.items():
            match = DOC_FIELD.search(body)
            if match:
                found[key] = match.group(1)
        return found


def merge_search_index(existing: str, incoming: str) -> tuple[str, list[str]] | None:
    """Merge two search-index.js texts.

    Returns:
        The merged text and the crate keys it changed, or None when either
        side cannot be parsed or the two use different layouts.
    """
    base = SearchIndex.parse(existing)
    update = SearchIndex.parse(incoming)
    if base is None or update is None:
        return None
    if base.layout != update.layout:
        logger.debug(f"Search index layouts differ ({base.layout} vs {update.layout})")
        return None

    changed = base.merge(update)
    return base.render(), changed


def read_descriptions(path: Path) -> dict[str, str]:
    """Read crate descriptions from a search index file, if present."""
    if not path.is_file():
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return {}
    index = SearchIndex.parse(text)
    return index.descriptions() if index else {}
