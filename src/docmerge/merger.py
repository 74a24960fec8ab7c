"""Tree Merger - combines per-crate rustdoc trees into one destination.

Handles:
- Crate pages copied to the same relative path
- Crate name collisions between distinct sources
- Shared assets (existing copy kept, identical copies skipped)
- Keyed merge of the search index
"""

import errno
import os
import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from docmerge.classify import Entry, EntryClassifier, EntryKind, safe_join
from docmerge.config import AssetPolicy, DocMergeConfig, get_default_config
from docmerge.errors import (
    CrateCollisionError,
    DestinationError,
    DestinationWriteError,
    SourceAccessError,
)
from docmerge.index import IndexSynthesizer
from docmerge.manifest import Manifest
from docmerge.search_index import merge_search_index
from docmerge.utils.hashing import files_identical
from docmerge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SharedAssetDivergence:
    """A shared asset that differs from the copy already kept."""

    path: str
    kept_source: str
    discarded_source: str

    def __str__(self) -> str:
        return (
            f"Shared asset {self.path} differs: kept {self.kept_source}, "
            f"discarded {self.discarded_source}"
        )

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "kept_source": self.kept_source,
            "discarded_source": self.discarded_source,
        }


@dataclass
class Diagnostic:
    """A non-fatal problem met while merging a source."""

    kind: str
    path: str
    source: str
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind}: {self.path} ({self.source}) {self.detail}".rstrip()

    def to_dict(self) -> dict:
        return {"kind": self.kind, "path": self.path, "source": self.source, "detail": self.detail}


@dataclass
class MergeResult:
    """Result of a merge operation."""

    timestamp: datetime = field(default_factory=datetime.now)
    sources_merged: List[str] = field(default_factory=list)
    crates: List[str] = field(default_factory=list)
    files_copied: int = 0
    files_updated: int = 0
    files_unchanged: int = 0
    shared_written: int = 0
    shared_skipped: int = 0
    search_index_merged: int = 0
    divergences: List[SharedAssetDivergence] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)
    index_crates: List[str] = field(default_factory=list)

    def combine(self, other: "MergeResult") -> None:
        """Fold another (per-source) result into this one."""
        self.sources_merged.extend(other.sources_merged)
        self.crates.extend(c for c in other.crates if c not in self.crates)
        self.files_copied += other.files_copied
        self.files_updated += other.files_updated
        self.files_unchanged += other.files_unchanged
        self.shared_written += other.shared_written
        self.shared_skipped += other.shared_skipped
        self.search_index_merged += other.search_index_merged
        self.divergences.extend(other.divergences)
        self.warnings.extend(other.warnings)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "sources_merged": self.sources_merged,
            "crates": self.crates,
            "files_copied": self.files_copied,
            "files_updated": self.files_updated,
            "files_unchanged": self.files_unchanged,
            "shared_written": self.shared_written,
            "shared_skipped": self.shared_skipped,
            "search_index_merged": self.search_index_merged,
            "divergences": [d.to_dict() for d in self.divergences],
            "warnings": [w.to_dict() for w in self.warnings],
            "index_crates": self.index_crates,
        }


@dataclass
class CopyAction:
    """One file to bring from a source into the destination."""

    entry: Entry
    src: Path
    dest: Path


@dataclass
class SourcePlan:
    """Everything a single source will write, decided before any write."""

    source: Path
    crates: Set[str] = field(default_factory=set)
    crate_files: List[CopyAction] = field(default_factory=list)
    shared_files: List[CopyAction] = field(default_factory=list)
    skipped: List[Diagnostic] = field(default_factory=list)

    @property
    def origin(self) -> str:
        return str(self.source)

    def files_for(self, crate: str) -> List[CopyAction]:
        return [a for a in self.crate_files if a.entry.crate == crate]


class DocMerger:
    """Merges documentation trees into a destination tree."""

    def __init__(self, dest: Path, config: Optional[DocMergeConfig] = None):
        self.config = config or get_default_config()
        self.dest = Path(dest)
        self.classifier = EntryClassifier(self.config)

        # Serializes shared-asset decisions
        self._lock = threading.Lock()

    @property
    def manifest_path(self) -> Path:
        return self.dest / self.config.manifest_name

    def prepare_destination(self) -> Manifest:
        """Check (or create) the destination and load its manifest."""
        if self.dest.exists() and not self.dest.is_dir():
            raise DestinationError(self.dest, "exists but is not a directory")

        if not self.dest.exists():
            if not self.config.create_dest:
                raise DestinationError(
                    self.dest, "not found. If this is intentional, use --create-dest"
                )
            try:
                self.dest.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DestinationWriteError(self.dest, e) from e
            logger.info(f"Created destination {self.dest}")

        if not os.access(self.dest, os.W_OK | os.X_OK):
            raise DestinationError(self.dest, "not writable")

        manifest = Manifest.load(self.manifest_path)
        manifest.forget_missing(self.dest)
        return manifest

    def _validate_source(self, source: Path) -> Path:
        if not source.exists():
            raise SourceAccessError(source, "not found. Did you run `cargo doc`?")
        if not source.is_dir():
            raise SourceAccessError(source, "not a directory")
        if not os.access(source, os.R_OK | os.X_OK):
            raise SourceAccessError(source, "permission denied")

        self._check_overlap(source)
        return source.resolve()

    def _check_overlap(self, source: Path) -> None:
        resolved = source.resolve()
        dest = self.dest.resolve()
        if resolved == dest or dest in resolved.parents or resolved in dest.parents:
            raise SourceAccessError(source, f"overlaps the destination {self.dest}")

    def plan_source(self, source: Path) -> SourcePlan:
        """Walk a source and decide what each of its entries becomes."""
        root = self._validate_source(Path(source))
        plan = SourcePlan(source=root)

        def on_walk_error(error: OSError) -> None:
            rel = Path(error.filename).relative_to(root).as_posix() if error.filename else "."
            kind = "symlink-loop" if error.errno == errno.ELOOP else "unreadable"
            plan.skipped.append(Diagnostic(kind, rel, plan.origin, str(error.strerror)))

        for entry in self.classifier.walk(root, onerror=on_walk_error):
            if entry.kind in (EntryKind.IGNORED, EntryKind.GENERATED):
                logger.debug(f"Skipping {entry.kind.value} entry {entry.key}")
                continue

            src_path = safe_join(root, entry.rel_path)
            if not os.access(src_path, os.R_OK):
                plan.skipped.append(
                    Diagnostic("unreadable", entry.key, plan.origin, "permission denied")
                )
                continue

            action = CopyAction(entry=entry, src=src_path, dest=safe_join(self.dest, entry.rel_path))
            if entry.kind == EntryKind.SHARED:
                plan.shared_files.append(action)
            else:
                plan.crates.add(entry.crate)
                plan.crate_files.append(action)

        logger.debug(
            f"Planned {root}: {len(plan.crates)} crate(s), "
            f"{len(plan.crate_files)} crate file(s), {len(plan.shared_files)} shared file(s)"
        )
        return plan

    def _dest_has_crate(self, crate: str) -> bool:
        if (self.dest / crate).is_dir():
            return True
        return any((self.dest / ns / crate).is_dir() for ns in self.config.assets.namespaces)

    def _crate_identical(self, plan: SourcePlan, crate: str) -> bool:
        return all(files_identical(a.src, a.dest) for a in plan.files_for(crate))

    def check_collisions(self, plan: SourcePlan, manifest: Manifest) -> List[Diagnostic]:
        """Raise on a crate name collision; returns warnings for forced overwrites.

        Raises:
            CrateCollisionError: A crate of this source already exists in the
                destination, came from a different source, and differs.
        """
        forced = []
        for crate in sorted(plan.crates):
            origin = manifest.origin_of(crate)
            if origin == plan.origin:
                continue
            if origin is None and not self._dest_has_crate(crate):
                continue
            if self._crate_identical(plan, crate):
                logger.debug(f"Crate {crate} from {plan.origin} is identical to the merged copy")
                continue

            existing = origin or "existing destination"
            if not self.config.force:
                raise CrateCollisionError(crate, existing, plan.origin)

            logger.warning(f"Overwriting crate {crate} from {existing} with {plan.origin}")
            forced.append(Diagnostic("forced-overwrite", crate, plan.origin, f"replaced {existing}"))
        return forced

    def _copy(self, action: CopyAction, plan: SourcePlan, result: MergeResult) -> bool:
        try:
            action.dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(action.src, action.dest)
        except OSError as e:
            if e.filename and Path(e.filename) == action.src:
                logger.warning(f"Skipping unreadable file {action.src}: {e.strerror}")
                result.warnings.append(Diagnostic("unreadable", action.entry.key, plan.origin, str(e.strerror)))
                return False
            raise DestinationWriteError(action.dest, e) from e
        return True

    def _apply_crate_file(self, action: CopyAction, plan: SourcePlan, result: MergeResult) -> str:
        if action.dest.is_file() and files_identical(action.src, action.dest):
            return "unchanged"
        existed = action.dest.exists()
        if not self._copy(action, plan, result):
            return "skipped"
        return "updated" if existed else "copied"

    def _apply_shared_file(
        self,
        action: CopyAction,
        plan: SourcePlan,
        manifest: Manifest,
        claimed: Dict[str, str],
        result: MergeResult,
    ) -> None:
        key = action.entry.key

        if not action.dest.exists():
            if self._copy(action, plan, result):
                claimed[key] = plan.origin
                manifest.record_shared(key, plan.origin)
                result.shared_written += 1
            return

        if files_identical(action.src, action.dest):
            claimed.setdefault(key, plan.origin)
            result.shared_skipped += 1
            return

        kept_source = claimed.get(key) or manifest.shared.get(key) or "existing destination"

        if action.entry.policy == AssetPolicy.MERGE_SEARCH_INDEX and action.dest.is_file():
            if self._merge_search_index(action, plan, result):
                claimed.setdefault(key, plan.origin)
                return
            detail = f"unrecognized layout, kept copy from {kept_source} without merging"
            logger.warning(f"Cannot merge {key} from {plan.origin}: {detail}")
            result.warnings.append(Diagnostic("search-index-fallback", key, plan.origin, detail))
            result.shared_skipped += 1
            return

        divergence = SharedAssetDivergence(
            path=key, kept_source=kept_source, discarded_source=plan.origin
        )
        logger.warning(str(divergence))
        result.divergences.append(divergence)
        result.shared_skipped += 1

    def _merge_search_index(self, action: CopyAction, plan: SourcePlan, result: MergeResult) -> bool:
        try:
            existing = action.dest.read_text(encoding="utf-8")
            incoming = action.src.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return False
        except OSError as e:
            if e.filename and Path(e.filename) == action.src:
                logger.warning(f"Skipping unreadable file {action.src}: {e.strerror}")
                result.warnings.append(Diagnostic("unreadable", action.entry.key, plan.origin, str(e.strerror)))
                return True
            raise DestinationWriteError(action.dest, e) from e

        merged = merge_search_index(existing, incoming)
        if merged is None:
            return False

        text, changed = merged
        if not changed:
            result.shared_skipped += 1
            return True

        tmp_path = action.dest.with_name(action.dest.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            os.replace(tmp_path, action.dest)
        except OSError as e:
            raise DestinationWriteError(action.dest, e) from e

        logger.info(f"Merged {len(changed)} crate(s) into {action.entry.key}: {', '.join(changed)}")
        result.search_index_merged += 1
        return True

    def apply_plan(self, plan: SourcePlan, manifest: Manifest, claimed: Dict[str, str]) -> MergeResult:
        """Write a planned source into the destination and commit its provenance."""
        result = MergeResult(sources_merged=[plan.origin], crates=sorted(plan.crates))
        result.warnings.extend(plan.skipped)
        for diagnostic in plan.skipped:
            logger.warning(f"Skipping {diagnostic.path} from {diagnostic.source}: {diagnostic.detail}")

        jobs = max(1, self.config.jobs)
        if jobs > 1 and len(plan.crate_files) > 1:
            with ThreadPoolExecutor(max_workers=jobs) as pool:
                outcomes = list(pool.map(lambda a: self._apply_crate_file(a, plan, result), plan.crate_files))
        else:
            outcomes = [self._apply_crate_file(a, plan, result) for a in plan.crate_files]

        result.files_copied = outcomes.count("copied")
        result.files_updated = outcomes.count("updated")
        result.files_unchanged = outcomes.count("unchanged")

        with self._lock:
            for action in plan.shared_files:
                self._apply_shared_file(action, plan, manifest, claimed, result)

            for crate in plan.crates:
                if manifest.origin_of(crate) is None or self.config.force:
                    manifest.record_crate(crate, plan.origin)
            manifest.save()

        return result

    def merge_source(
        self,
        source: Path,
        manifest: Manifest,
        claimed: Optional[Dict[str, str]] = None,
    ) -> MergeResult:
        """Merge a single source tree into the destination."""
        if claimed is None:
            claimed = {}

        plan = self.plan_source(source)
        forced = self.check_collisions(plan, manifest)

        logger.info(f"Merging {plan.origin} ({', '.join(sorted(plan.crates)) or 'no crates'})")
        result = self.apply_plan(plan, manifest, claimed)
        result.warnings.extend(forced)

        logger.info(
            f"Merged {plan.origin}: {result.files_copied} new, {result.files_updated} updated, "
            f"{result.files_unchanged} unchanged, {result.shared_written} shared written"
        )
        return result

    def merge_all(self, sources: Sequence[Path]) -> MergeResult:
        """Merge sources in the given order; earlier sources win shared-asset ties."""
        combined = MergeResult()
        for source in sources:
            self._check_overlap(Path(source))

        manifest = self.prepare_destination()
        claimed: Dict[str, str] = {}

        for source in sources:
            result = self.merge_source(Path(source), manifest, claimed)
            combined.combine(result)

        return combined


def merge_docs(
    sources: Sequence[Path],
    dest: Path,
    config: Optional[DocMergeConfig] = None,
) -> MergeResult:
    """Merge every source into ``dest`` and rebuild the index page."""
    config = config or get_default_config()
    merger = DocMerger(dest, config)
    result = merger.merge_all(sources)

    synthesizer = IndexSynthesizer(dest, config)
    result.index_crates = synthesizer.write()
    return result
