"""doc-merge configuration management."""

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

# Default paths
DEFAULT_CONFIG_FILE = Path("doc-merge.yaml")
DEFAULT_SOURCE = Path("target") / "doc"
DEFAULT_MANIFEST_NAME = ".doc-merge.json"


class AssetPolicy(str, Enum):
    """How a shared asset is reconciled when several sources carry it."""
    KEEP_FIRST = "keep-first"
    MERGE_SEARCH_INDEX = "merge-search-index"


class AssetRule(BaseModel):
    """A shared-asset pattern and the policy applied to matching paths."""
    pattern: str
    policy: AssetPolicy = AssetPolicy.KEEP_FIRST


class AssetConfig(BaseModel):
    """Layout of a rustdoc output directory.

    Patterns are fnmatch globs matched against the POSIX relative path of an
    entry. A pattern without a slash only matches files at the top level of
    the tree, so ``*.html`` never captures a crate's own pages. The first
    matching shared rule wins.
    """
    shared: list[AssetRule] = Field(default_factory=lambda: [
        AssetRule(pattern="search-index.js", policy=AssetPolicy.MERGE_SEARCH_INDEX),
        AssetRule(pattern="static.files/*"),
        AssetRule(pattern="implementors/*"),
        AssetRule(pattern="trait.impl/*"),
        AssetRule(pattern="type.impl/*"),
        AssetRule(pattern="*.js"),
        AssetRule(pattern="*.css"),
        AssetRule(pattern="*.html"),
        AssetRule(pattern="*.svg"),
        AssetRule(pattern="*.png"),
        AssetRule(pattern="*.ico"),
        AssetRule(pattern="*.woff"),
        AssetRule(pattern="*.woff2"),
        AssetRule(pattern="*.txt"),
        AssetRule(pattern="*.md"),
    ])
    # Top-level directories keyed by crate name in their second segment
    namespaces: list[str] = Field(default_factory=lambda: ["src", "search.desc"])
    ignore: list[str] = Field(default_factory=lambda: [".lock", "*/.lock"])


class IndexConfig(BaseModel):
    """Configuration for the synthesized index page."""
    filename: str = "index.html"
    entry_file: str = "index.html"
    title: str = "Documentation"
    write_crates_js: bool = True
    crates_js: str = "crates.js"
    search_index: str = "search-index.js"  # Source of crate descriptions
    default_crate: str | None = None  # Redirect target, like rustdoc's own root page


class DocMergeConfig(BaseModel):
    """Main doc-merge configuration."""
    version: str = "1.0"
    assets: AssetConfig = Field(default_factory=AssetConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    manifest_name: str = DEFAULT_MANIFEST_NAME
    create_dest: bool = False
    force: bool = False
    jobs: int = 1

    def generated_files(self) -> list[str]:
        """Top-level files this tool writes itself and never copies from a source."""
        files = [self.index.filename, self.manifest_name]
        if self.index.write_crates_js:
            files.append(self.index.crates_js)
        return files


def get_default_config() -> DocMergeConfig:
    """Get default configuration for `cargo doc` output."""
    return DocMergeConfig()


def load_config(config_path: Path | None = None) -> DocMergeConfig:
    """Load configuration from file or return defaults."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f)
            if data:
                return DocMergeConfig.model_validate(data)

    return get_default_config()


def save_config(config: DocMergeConfig, config_path: Path | None = None) -> None:
    """Save configuration to file."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)


def get_nested_value(config: DocMergeConfig, key: str) -> Any:
    """Get a nested config value using dotted key notation.

    Examples:
        get_nested_value(config, "index.title")             -> "Documentation"
        get_nested_value(config, "assets.namespaces.0")     -> "src"
        get_nested_value(config, "assets.shared.0.policy")  -> "merge-search-index"
    """
    parts = key.split(".")
    obj: Any = config

    for part in parts:
        if isinstance(obj, list):
            try:
                obj = obj[int(part)]
            except (ValueError, IndexError):
                return None
        elif isinstance(obj, dict):
            obj = obj.get(part)
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            return None

        if obj is None:
            return None

    if isinstance(obj, Enum):
        return obj.value
    return obj


def set_nested_value(config: DocMergeConfig, key: str, value: str) -> None:
    """Set a nested config value using dotted key notation.

    Examples:
        set_nested_value(config, "index.title", "My crates")
        set_nested_value(config, "create_dest", "true")
        set_nested_value(config, "index.default_crate", "alpha")

    Note: Values are coerced to the type of the current value.
    """
    parts = key.split(".")
    obj: Any = config

    # Navigate to parent object
    for part in parts[:-1]:
        if isinstance(obj, list):
            try:
                obj = obj[int(part)]
            except (ValueError, IndexError):
                raise KeyError(f"Invalid config key: {key}")
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            raise KeyError(f"Invalid config key: {key}")

    final_key = parts[-1]

    if isinstance(obj, list):
        try:
            obj[int(final_key)] = value
        except (ValueError, IndexError):
            raise KeyError(f"Invalid config key: {key}")
        return

    if not hasattr(obj, final_key):
        raise KeyError(f"Invalid config key: {key}")

    current = getattr(obj, final_key)
    coerced: Any = value
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes", "on")
    elif isinstance(current, int):
        coerced = int(value)
    elif isinstance(current, Enum):
        coerced = type(current)(value)
    elif current is None and value.lower() in ("none", "null", ""):
        coerced = None

    setattr(obj, final_key, coerced)
