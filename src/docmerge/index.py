"""Index Synthesizer - writes the top-level page linking every merged crate."""

import html
import json
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from docmerge.classify import EntryClassifier
from docmerge.config import DocMergeConfig, get_default_config
from docmerge.errors import DestinationWriteError
from docmerge.search_index import read_descriptions
from docmerge.utils.logging import get_logger

logger = get_logger(__name__)

STYLE = """\
body { font-family: "Source Serif 4", NanumBarunGothic, serif; max-width: 48rem; margin: 2rem auto; padding: 0 1rem; }
h1 { font-family: "Fira Sans", Arial, sans-serif; }
ul.crates { list-style: none; padding: 0; }
ul.crates li { padding: 0.25rem 0; }
ul.crates a { font-family: "Source Code Pro", monospace; }
.desc { color: #5a5a5a; margin-left: 0.5rem; }"""


class IndexSynthesizer:
    """Builds index.html (and crates.js) from the crates present in a destination.

    The page is derived from the destination on disk, never from what a run
    happened to merge, so it stays correct after an interrupted run.
    """

    def __init__(self, dest: Path, config: Optional[DocMergeConfig] = None):
        self.dest = Path(dest)
        self.config = config or get_default_config()
        self.classifier = EntryClassifier(self.config)

    @property
    def index_path(self) -> Path:
        return self.dest / self.config.index.filename

    def crates(self) -> list[str]:
        """Crate names present at the top level of the destination, sorted."""
        crates = self.classifier.crate_dirs(self.dest)
        entry_file = self.config.index.entry_file
        for crate in crates:
            if not (self.dest / crate / entry_file).is_file():
                logger.warning(f"Crate {crate} has no {entry_file}; its index link will be broken")
        return crates

    def _href(self, crate: str) -> str:
        return f"{quote(crate)}/{quote(self.config.index.entry_file)}"

    def render(self, crates: list[str], descriptions: Optional[dict[str, str]] = None) -> str:
        """Render the index page for the given crates."""
        descriptions = descriptions or {}
        index = self.config.index
        title = html.escape(index.title)

        head = [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            '<meta name="viewport" content="width=device-width, initial-scale=1.0">',
            '<meta name="generator" content="doc-merge">',
        ]

        default_crate = index.default_crate
        if default_crate:
            if default_crate in crates:
                target = html.escape(self._href(default_crate), quote=True)
                head.append(f'<meta http-equiv="refresh" content="0; url={target}">')
            else:
                logger.warning(f"Default crate {default_crate} is not in the destination; not redirecting")

        head += [
            f"<title>{title}</title>",
            "<style>",
            STYLE,
            "</style>",
            "</head>",
        ]

        body = ["<body>", f"<h1>{title}</h1>", '<ul class="crates">']
        for crate in crates:
            href = html.escape(self._href(crate), quote=True)
            item = f'<li><a href="{href}">{html.escape(crate)}</a>'
            if crate in descriptions:
                item += f' <span class="desc">{html.escape(descriptions[crate])}</span>'
            body.append(item + "</li>")
        body += ["</ul>", "</body>", "</html>", ""]

        return "\n".join(head + body)

    def render_crates_js(self, crates: list[str]) -> str:
        return f"window.ALL_CRATES = {json.dumps(crates, separators=(',', ':'))};"

    def _write(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
            os.replace(tmp_path, path)
        except OSError as e:
            raise DestinationWriteError(path, e) from e

    def write(self) -> list[str]:
        """Rewrite the index page from the destination's current crates.

        Returns:
            The crate names listed on the page.
        """
        crates = self.crates()
        descriptions = read_descriptions(self.dest / self.config.index.search_index)

        self._write(self.index_path, self.render(crates, descriptions))
        if self.config.index.write_crates_js:
            self._write(self.dest / self.config.index.crates_js, self.render_crates_js(crates))

        logger.info(f"Wrote {self.index_path} with {len(crates)} crate(s)")
        return crates
