"""Exceptions raised while merging documentation trees."""

from pathlib import Path, PurePath


class DocMergeError(Exception):
    """Base class for fatal merge errors."""

    exit_code = 1


class SourceAccessError(DocMergeError):
    """A source root is missing, not a directory or unreadable."""

    def __init__(self, source: Path, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot read source {source}: {reason}")


class DestinationError(DocMergeError):
    """The destination root cannot be used."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Destination {path}: {reason}")


class DestinationWriteError(DocMergeError):
    """Writing below the destination failed (permissions, disk full, ...)."""

    def __init__(self, path: Path, cause: OSError) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause.strerror or cause}")


class CrateCollisionError(DocMergeError):
    """Two distinct sources document a crate with the same name."""

    exit_code = 2

    def __init__(self, crate: str, existing_source: str, incoming_source: str) -> None:
        self.crate = crate
        self.existing_source = existing_source
        self.incoming_source = incoming_source
        super().__init__(
            f"Crate '{crate}' from {incoming_source} collides with the copy "
            f"already merged from {existing_source}"
        )


class UnsafePathError(DocMergeError):
    """An entry resolves outside of the tree it was found in."""

    def __init__(self, path: PurePath) -> None:
        self.path = path
        super().__init__(f"Refusing path outside of its root: {path}")
