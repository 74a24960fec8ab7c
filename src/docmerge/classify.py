"""Entry classification - decides what each path in a doc tree belongs to."""

import errno
import os
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator

from docmerge.config import AssetPolicy, DocMergeConfig
from docmerge.errors import UnsafePathError
from docmerge.utils.logging import get_logger

logger = get_logger(__name__)


class EntryKind(str, Enum):
    """What an entry of a documentation tree is."""
    CRATE = "crate"          # Under a top-level crate directory
    NAMESPACED = "namespaced"  # Under src/<crate>/ and friends
    SHARED = "shared"        # Common asset emitted by every run
    GENERATED = "generated"  # Written by doc-merge itself
    IGNORED = "ignored"


@dataclass(frozen=True)
class Entry:
    """A file discovered while walking a tree, keyed by relative path."""
    rel_path: PurePosixPath
    kind: EntryKind
    crate: str | None = None
    policy: AssetPolicy | None = None

    @property
    def key(self) -> str:
        return self.rel_path.as_posix()


def _rule_matches(pattern: str, rel: str) -> bool:
    if "/" not in pattern and "/" in rel:
        return False
    return fnmatchcase(rel, pattern)


class EntryClassifier:
    """Classifies relative paths using the asset configuration."""

    def __init__(self, config: DocMergeConfig) -> None:
        self.config = config
        self._generated = set(config.generated_files())

    def shared_policy(self, rel: str) -> AssetPolicy | None:
        """Return the policy of the first shared rule matching ``rel``."""
        for rule in self.config.assets.shared:
            if _rule_matches(rule.pattern, rel):
                return rule.policy
        return None

    def is_ignored(self, rel: str) -> bool:
        return any(_rule_matches(p, rel) for p in self.config.assets.ignore)

    def classify(self, rel_path: PurePosixPath) -> Entry:
        """Classify a file by its relative path."""
        rel = rel_path.as_posix()
        parts = rel_path.parts

        if self.is_ignored(rel):
            return Entry(rel_path, EntryKind.IGNORED)

        if len(parts) == 1:
            if rel in self._generated:
                return Entry(rel_path, EntryKind.GENERATED)
            # Loose top-level files belong to no crate
            policy = self.shared_policy(rel) or AssetPolicy.KEEP_FIRST
            return Entry(rel_path, EntryKind.SHARED, policy=policy)

        if parts[0] in self.config.assets.namespaces:
            if len(parts) > 2:
                return Entry(rel_path, EntryKind.NAMESPACED, crate=parts[1])
            return Entry(rel_path, EntryKind.SHARED, policy=AssetPolicy.KEEP_FIRST)

        policy = self.shared_policy(rel)
        if policy is not None:
            return Entry(rel_path, EntryKind.SHARED, policy=policy)

        return Entry(rel_path, EntryKind.CRATE, crate=parts[0])

    def is_crate_dir(self, name: str) -> bool:
        """Check whether a top-level directory name is a crate root."""
        if name.startswith("."):
            return False
        if name in self.config.assets.namespaces:
            return False
        if self.is_ignored(name):
            return False
        for rule in self.config.assets.shared:
            head, sep, _ = rule.pattern.partition("/")
            if sep and fnmatchcase(name, head):
                return False
        return True

    def walk(self, root: Path, onerror: Callable[[OSError], None] | None = None) -> Iterator[Entry]:
        """Yield classified file entries under ``root`` in sorted order.

        Symlinked directories are descended into when they stay inside
        ``root``. A link back to one of its own ancestors is reported
        through ``onerror`` and skipped.

        Raises:
            UnsafePathError: If a symlink points outside of ``root``.
        """
        root = root.resolve()
        for dirpath, dirnames, filenames in os.walk(root, onerror=onerror, followlinks=True):
            dirnames.sort()
            current = Path(dirpath)
            ancestors = _real_ancestors(root, current)
            for dirname in list(dirnames):
                path = current / dirname
                if not path.is_symlink():
                    continue
                _check_inside(root, path)
                if path.resolve() in ancestors:
                    dirnames.remove(dirname)
                    if onerror is not None:
                        onerror(OSError(errno.ELOOP, os.strerror(errno.ELOOP), str(path)))
            for filename in sorted(filenames):
                path = current / filename
                if path.is_symlink():
                    _check_inside(root, path)
                rel_path = PurePosixPath(path.relative_to(root).as_posix())
                yield self.classify(rel_path)

    def crate_dirs(self, root: Path) -> list[str]:
        """List crate directories at the top level of ``root``, sorted."""
        if not root.is_dir():
            return []
        return sorted(
            child.name
            for child in root.iterdir()
            if child.is_dir() and self.is_crate_dir(child.name)
        )


def _real_ancestors(root: Path, current: Path) -> set[Path]:
    """Resolved paths of ``current`` and every directory above it up to ``root``."""
    ancestors = {root}
    path = root
    for part in current.relative_to(root).parts:
        path = path / part
        ancestors.add(path.resolve())
    return ancestors


def _check_inside(root: Path, path: Path) -> None:
    target = path.resolve()
    if target != root and root not in target.parents:
        raise UnsafePathError(path)


def safe_join(root: Path, rel_path: PurePosixPath) -> Path:
    """Join a relative path onto ``root``, refusing traversal outside it."""
    if rel_path.is_absolute() or ".." in rel_path.parts:
        raise UnsafePathError(rel_path)
    return root.joinpath(*rel_path.parts)
