"""Provenance manifest - remembers which source produced what in a destination.

The manifest lives inside the destination tree and is rewritten after each
source is committed. It maps every merged crate to the absolute source root
it came from, which is what tells a re-run of the same crate apart from a
second crate that happens to share its name.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from docmerge.errors import DestinationError, DestinationWriteError
from docmerge.utils.logging import get_logger

logger = get_logger(__name__)

MANIFEST_VERSION = 1


@dataclass
class Manifest:
    """Crate and shared-asset provenance for one destination."""

    path: Path
    crates: dict[str, str] = field(default_factory=dict)
    shared: dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "Manifest":
        """Load the manifest, or return an empty one if there is none yet."""
        if not path.exists():
            return cls(path=path)

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DestinationError(path, f"corrupt manifest ({e})") from e
        except OSError as e:
            raise DestinationError(path, f"cannot read manifest ({e.strerror or e})") from e

        if not isinstance(data, dict):
            raise DestinationError(path, "corrupt manifest (expected a JSON object)")

        version = data.get("version", MANIFEST_VERSION)
        if version > MANIFEST_VERSION:
            raise DestinationError(path, f"manifest version {version} is newer than supported")

        return cls(
            path=path,
            crates=dict(data.get("crates", {})),
            shared=dict(data.get("shared", {})),
        )

    def origin_of(self, crate: str) -> str | None:
        return self.crates.get(crate)

    def record_crate(self, crate: str, source: str) -> None:
        self.crates[crate] = source

    def record_shared(self, rel_path: str, source: str) -> None:
        self.shared[rel_path] = source

    def forget_missing(self, dest: Path) -> list[str]:
        """Drop crates whose directory no longer exists in ``dest``."""
        gone = [name for name in self.crates if not (dest / name).is_dir()]
        for name in gone:
            del self.crates[name]
        if gone:
            logger.debug(f"Forgot {len(gone)} crate(s) removed from destination: {', '.join(gone)}")
        return gone

    def to_dict(self) -> dict:
        return {
            "version": MANIFEST_VERSION,
            "crates": dict(sorted(self.crates.items())),
            "shared": dict(sorted(self.shared.items())),
        }

    def save(self) -> None:
        """Write the manifest atomically."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
                json.dump(self.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise DestinationWriteError(self.path, e) from e
