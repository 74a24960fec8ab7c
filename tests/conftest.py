"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path

import pytest

from docmerge.config import DocMergeConfig


def object_search_index(crates: dict[str, str]) -> str:
    """Build a search-index.js in the older object-keyed layout."""
    names = sorted(crates)
    lines = ["var searchIndex = JSON.parse('{\\"]
    for i, name in enumerate(names):
        sep = "," if i < len(names) - 1 else ""
        lines.append(f'"{name}":{{"doc":"{crates[name]}","t":"F","n":["run"]}}{sep}\\')
    lines.append("}');")
    lines.append("if (typeof window !== 'undefined' && window.initSearch) {window.initSearch(searchIndex)};")
    return "\n".join(lines) + "\n"


def build_doc_tree(
    root: Path,
    crates: dict[str, str],
    static: str = "rustdoc v1",
) -> Path:
    """Create a fake `cargo doc` output tree.

    Args:
        root: Directory to create (the equivalent of target/doc)
        crates: Crate name -> page body, also used as the crate description
        static: Content of the shared stylesheet
    """
    root.mkdir(parents=True, exist_ok=True)

    for name, body in crates.items():
        crate_dir = root / name
        (crate_dir / "fn").mkdir(parents=True, exist_ok=True)
        (crate_dir / "index.html").write_text(f"<h1>{name}</h1><p>{body}</p>")
        (crate_dir / "fn.run.html").write_text(f"<h2>{name}::run</h2>")
        (crate_dir / "sidebar-items.js").write_text(f'window.SIDEBAR_ITEMS = {{"fn":["run"]}}; // {name}')

        src_dir = root / "src" / name
        src_dir.mkdir(parents=True, exist_ok=True)
        (src_dir / "lib.rs.html").write_text(f"<pre>// {name}: {body}</pre>")

    static_dir = root / "static.files"
    static_dir.mkdir(exist_ok=True)
    (static_dir / "rustdoc.css").write_text(static)
    (static_dir / "main.js").write_text("function main() {}")

    (root / "search-index.js").write_text(object_search_index(crates))
    (root / "crates.js").write_text(f"window.ALL_CRATES = {sorted(crates)!r};")
    (root / "help.html").write_text("<h1>Help</h1>")
    (root / "settings.html").write_text("<h1>Settings</h1>")
    (root / ".lock").write_text("")

    return root


def snapshot(root: Path) -> dict[str, bytes]:
    """Map every file below root to its content."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config():
    """Default configuration that creates the destination on demand."""
    return DocMergeConfig(create_dest=True)


@pytest.fixture
def alpha_docs(temp_dir):
    """Doc tree for a single crate named alpha."""
    return build_doc_tree(temp_dir / "alpha" / "target" / "doc", {"alpha": "Alpha crate"})


@pytest.fixture
def beta_docs(temp_dir):
    """Doc tree for a single crate named beta."""
    return build_doc_tree(temp_dir / "beta" / "target" / "doc", {"beta": "Beta crate"})


@pytest.fixture
def dest(temp_dir):
    """Destination path (not created)."""
    return temp_dir / "site"
