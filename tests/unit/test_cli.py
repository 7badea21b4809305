"""Unit tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest
import yaml

from extrepo.cli import main


@pytest.fixture
def repo_tree(tmp_path: Path, pom_writer: Callable[..., Path]) -> Path:
    base = tmp_path / "repo"
    pom_writer(base, "org.example", "widget", "1.0", name="Widget", description="Makes widgets")
    pom_writer(base, "org.example", "gizmo", "2.0", packaging="xml", category="template")
    return base


@pytest.fixture
def cli_config(tmp_path: Path, repo_tree: Path) -> str:
    config_file = tmp_path / "extrepo.yaml"
    config_file.write_text(yaml.safe_dump({
        "logging": {"format": "text", "file": {"enabled": False}},
        "repositories": [{"id": "local", "type": "file", "base": str(repo_tree)}],
    }))
    return str(config_file)


def test_no_command_prints_help(capsys: pytest.CaptureFixture) -> None:
    """Test that running without a command shows usage and fails."""
    assert main([]) == 1
    assert "usage: extrepo" in capsys.readouterr().out


def test_categories(cli_config: str, capsys: pytest.CaptureFixture) -> None:
    """Test listing categories from the configured repositories."""
    assert main(["--config", cli_config, "categories"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert "processor" in lines
    assert "template" in lines


def test_list(cli_config: str, capsys: pytest.CaptureFixture) -> None:
    """Test the human-readable listing."""
    assert main(["--config", cli_config, "list"]) == 0

    out = capsys.readouterr().out
    assert "Repository local (2):" in out
    assert "  - Widget: org.example:widget:1.0 [processor]" in out
    assert "    Makes widgets" in out
    assert "  - org.example.gizmo: org.example:gizmo:2.0 [template]" in out


def test_list_category_json(cli_config: str, capsys: pytest.CaptureFixture) -> None:
    """Test the JSON listing of one category."""
    assert main(["--config", cli_config, "list", "--category", "template", "--json"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert list(data["local"]) == ["org.example.gizmo"]
    assert data["local"]["org.example.gizmo"]["packaging"] == "xml"
    assert data["local"]["org.example.gizmo"]["repository"] == "local"


def test_list_empty(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    """Test the listing of a repository without extensions."""
    (tmp_path / "empty").mkdir()

    assert main(["--config", str(tmp_path / "none.yaml"), "--repo-base", str(tmp_path / "empty"), "list"]) == 0
    assert "No extensions available." in capsys.readouterr().out


def test_resolve(cli_config: str, repo_tree: Path, capsys: pytest.CaptureFixture) -> None:
    """Test resolving a package by listing key."""
    assert main(["--config", cli_config, "resolve", "Widget"]) == 0

    out = capsys.readouterr().out
    assert "Resolved org.example:widget:1.0 from local" in out
    assert f"Package: {repo_tree / 'org' / 'example' / 'widget' / '1.0' / 'widget-1.0.nar'}" in out


def test_resolve_unknown_key(cli_config: str, capsys: pytest.CaptureFixture) -> None:
    """Test that an unknown key fails."""
    assert main(["--config", cli_config, "resolve", "Nothing"]) == 1
    assert "Extension not found: Nothing" in capsys.readouterr().err


def test_repo_base_overrides_configuration(
        cli_config: str,
        tmp_path: Path,
        pom_writer: Callable[..., Path],
        capsys: pytest.CaptureFixture
) -> None:
    """Test that --repo-base replaces the configured repositories."""
    other = tmp_path / "other"
    pom_writer(other, "org.other", "thing", "3.1")

    assert main(["--config", cli_config, "--repo-base", str(other), "--repo-id", "adhoc", "list"]) == 0

    out = capsys.readouterr().out
    assert "Repository adhoc (1):" in out
    assert "Widget" not in out


def test_refresh(cli_config: str, capsys: pytest.CaptureFixture) -> None:
    """Test refreshing the configured repositories."""
    assert main(["--config", cli_config, "refresh"]) == 0
    assert "local: refreshed" in capsys.readouterr().out


def test_refresh_failure(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    """Test that a repository that cannot be scanned fails the refresh."""
    assert main([
        "--config", str(tmp_path / "none.yaml"),
        "--repo-base", str(tmp_path / "missing"),
        "refresh",
    ]) == 1
    assert "cli: failed" in capsys.readouterr().out


def test_invalid_config(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    """Test that an invalid configuration file is reported."""
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("fetch:\n  timeout: -1\n")

    assert main(["--config", str(config_file), "categories"]) == 1
    assert "Error listing categories" in capsys.readouterr().err
