"""Tests for CLI commands."""

import json

import pytest
from click.testing import CliRunner

from docmerge.cli import main

from conftest import build_doc_tree


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture
def config_args(temp_dir):
    """Point the CLI at a config file inside the test directory."""
    return ["--config", str(temp_dir / "doc-merge.yaml")]


def test_cli_version(runner):
    """Test --version flag."""
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "doc-merge" in result.output.lower()


def test_cli_help(runner):
    """Test --help flag."""
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "merge" in result.output
    assert "index" in result.output
    assert "crates" in result.output
    assert "config" in result.output


def test_cli_merge_help(runner):
    """Test merge command help."""
    result = runner.invoke(main, ["merge", "--help"])
    assert result.exit_code == 0
    assert "--src" in result.output
    assert "--dest" in result.output
    assert "--create-dest" in result.output
    assert "--index-crate" in result.output


def test_cli_merge(runner, config_args, alpha_docs, beta_docs, dest):
    """Test merging two sources."""
    result = runner.invoke(main, config_args + [
        "merge", "--src", str(alpha_docs), "--src", str(beta_docs),
        "--dest", str(dest), "--create-dest",
    ])

    assert result.exit_code == 0, result.output
    assert "MERGE COMPLETE" in result.output
    assert (dest / "alpha" / "index.html").exists()
    assert (dest / "beta" / "index.html").exists()
    assert (dest / "index.html").exists()


def test_cli_merge_json(runner, config_args, alpha_docs, dest):
    """Test machine-readable merge output."""
    result = runner.invoke(main, config_args + [
        "-q", "merge", "--src", str(alpha_docs), "--dest", str(dest), "--create-dest", "--json",
    ])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["crates"] == ["alpha"]
    assert data["index_crates"] == ["alpha"]
    assert data["files_copied"] == 4


def test_cli_merge_missing_dest(runner, config_args, alpha_docs, dest):
    """Test that the destination must exist without --create-dest."""
    result = runner.invoke(main, config_args + ["merge", "--src", str(alpha_docs), "--dest", str(dest)])

    assert result.exit_code == 1
    assert "--create-dest" in result.output
    assert not dest.exists()


def test_cli_merge_missing_source(runner, config_args, temp_dir, dest):
    """Test that a missing source fails the run."""
    missing = temp_dir / "nope"
    result = runner.invoke(main, config_args + [
        "merge", "--src", str(missing), "--dest", str(dest), "--create-dest",
    ])

    assert result.exit_code == 1
    assert "nope" in "".join(result.output.split())


def test_cli_merge_collision(runner, config_args, temp_dir, alpha_docs, dest):
    """Test that a crate name collision exits with status 2 naming both sources."""
    other = build_doc_tree(temp_dir / "other", {"alpha": "Another alpha"})
    result = runner.invoke(main, config_args + [
        "merge", "--src", str(alpha_docs), "--src", str(other),
        "--dest", str(dest), "--create-dest",
    ])

    assert result.exit_code == 2
    output = " ".join(result.output.split())
    assert "collision" in output.lower()
    assert "other" in output


def test_cli_merge_divergence_warning(runner, config_args, temp_dir, alpha_docs, dest):
    """Test that diverging shared assets are reported without failing."""
    beta = build_doc_tree(temp_dir / "beta2", {"beta": "Beta crate"}, static="rustdoc v2")
    result = runner.invoke(main, config_args + [
        "merge", "--src", str(alpha_docs), "--src", str(beta),
        "--dest", str(dest), "--create-dest",
    ])

    assert result.exit_code == 0, result.output
    assert "static.files/rustdoc.css" in "".join(result.output.split())


def test_cli_index(runner, config_args, alpha_docs, dest):
    """Test rebuilding the index on its own."""
    runner.invoke(main, config_args + ["merge", "--src", str(alpha_docs), "--dest", str(dest), "--create-dest"])
    (dest / "index.html").unlink()

    result = runner.invoke(main, config_args + ["index", "--dest", str(dest)])

    assert result.exit_code == 0, result.output
    assert "1 crate" in result.output
    assert 'href="alpha/index.html"' in (dest / "index.html").read_text()


def test_cli_crates_json(runner, config_args, alpha_docs, dest):
    """Test listing merged crates with their origin."""
    runner.invoke(main, config_args + ["merge", "--src", str(alpha_docs), "--dest", str(dest), "--create-dest"])

    result = runner.invoke(main, config_args + ["-q", "crates", "--dest", str(dest), "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"alpha": str(alpha_docs.resolve())}


def test_cli_config_init_and_set(runner, config_args, temp_dir):
    """Test writing and editing the configuration file."""
    result = runner.invoke(main, config_args + ["config", "init"])
    assert result.exit_code == 0
    assert "initialized" in result.output.lower()
    assert (temp_dir / "doc-merge.yaml").exists()

    result = runner.invoke(main, config_args + ["config", "init"])
    assert result.exit_code == 1

    result = runner.invoke(main, config_args + ["config", "set", "index.title", "My crates"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(main, config_args + ["config", "get", "index.title"])
    assert result.exit_code == 0
    assert result.output.strip() == "My crates"


def test_cli_config_set_invalid(runner, config_args):
    """Test that unknown keys are rejected."""
    result = runner.invoke(main, config_args + ["config", "set", "nothing.here", "1"])
    assert result.exit_code == 1


def test_cli_merge_write_error(runner, config_args, alpha_docs, dest):
    """Test that a failed write exits non-zero and names the path."""
    runner.invoke(main, config_args + ["merge", "--src", str(alpha_docs), "--dest", str(dest), "--create-dest"])
    (alpha_docs / "alpha" / "struct").mkdir()
    (alpha_docs / "alpha" / "struct" / "Foo.html").write_text("<h2>Foo</h2>")
    (dest / "alpha" / "struct").write_text("not a directory")

    result = runner.invoke(main, config_args + ["merge", "--src", str(alpha_docs), "--dest", str(dest)])

    assert result.exit_code == 1
    assert "Foo.html" in "".join(result.output.split())


def test_cli_merge_corrupt_manifest(runner, config_args, alpha_docs, dest):
    """Test that an unusable manifest is reported without a traceback."""
    dest.mkdir()
    (dest / ".doc-merge.json").mkdir()

    result = runner.invoke(main, config_args + ["merge", "--src", str(alpha_docs), "--dest", str(dest)])

    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert ".doc-merge.json" in "".join(result.output.split())


def test_cli_merge_warning_printed_once(runner, config_args, temp_dir, alpha_docs, dest):
    """Test that each divergence is reported a single time."""
    beta = build_doc_tree(temp_dir / "beta2", {"beta": "Beta crate"}, static="rustdoc v2")
    result = runner.invoke(main, config_args + [
        "merge", "--src", str(alpha_docs), "--src", str(beta),
        "--dest", str(dest), "--create-dest",
    ])

    assert result.exit_code == 0, result.output
    assert "".join(result.output.split()).count("static.files/rustdoc.css") == 1
