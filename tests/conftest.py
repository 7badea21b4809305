"""Pytest configuration and fixtures for extrepo tests."""

import os
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional
from unittest.mock import MagicMock

import pytest
import yaml

from extrepo.core.config_manager import ConfigManager

RESOURCES_DIR = Path(__file__).parent / "resources"
DUMMY_DIR = RESOURCES_DIR / "private.nifi.extensions" / "dummy"

POM_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
    <modelVersion>4.0.0</modelVersion>
    <groupId>{group_id}</groupId>
    <artifactId>{artifact_id}</artifactId>
    <version>{version}</version>
    <packaging>{packaging}</packaging>
    {extra}
    <properties>
        <nifiExtensionType>{category}</nifiExtensionType>
    </properties>
</project>
"""


def render_pom(
        group_id: str,
        artifact_id: str,
        version: str,
        packaging: str = "nar",
        category: str = "processor",
        name: Optional[str] = None,
        description: Optional[str] = None
) -> str:
    """Render a minimal POM descriptor."""
    extra = ""
    if name:
        extra += f"<name>{name}</name>"
    if description:
        extra += f"<description>{description}</description>"
    return POM_TEMPLATE.format(
        group_id=group_id,
        artifact_id=artifact_id,
        version=version,
        packaging=packaging,
        category=category,
        extra=extra,
    )


@pytest.fixture
def dummy_pom() -> Path:
    """The reference descriptor document."""
    return DUMMY_DIR / "dummyExtension.pom"


@pytest.fixture
def dummy_package() -> Path:
    """The package file that belongs to the reference descriptor."""
    return DUMMY_DIR / "dummyExtension.txt"


@pytest.fixture
def pom_text() -> Callable[..., str]:
    """Render POM text without writing it anywhere."""
    return render_pom


@pytest.fixture
def pom_writer() -> Callable[..., Path]:
    """Write a descriptor, and optionally its package, in Maven layout below a base directory."""

    def _write(
            base: Path,
            group_id: str,
            artifact_id: str,
            version: str,
            packaging: str = "nar",
            category: str = "processor",
            name: Optional[str] = None,
            description: Optional[str] = None,
            package_content: Optional[bytes] = b"package"
    ) -> Path:
        directory = base.joinpath(*group_id.split(".")) / artifact_id / version
        directory.mkdir(parents=True, exist_ok=True)
        pom = directory / f"{artifact_id}-{version}.pom"
        pom.write_text(
            render_pom(group_id, artifact_id, version, packaging, category, name, description),
            encoding="utf-8",
        )
        if package_content is not None:
            (directory / f"{artifact_id}-{version}.{packaging}").write_bytes(package_content)
        return pom

    return _write


@pytest.fixture
def mock_repository() -> MagicMock:
    """A stand-in repository for specs that never touch a backing store."""
    repository = MagicMock()
    repository.repo_id = "Dummy_Repo_One"
    repository.resolve_descriptor.return_value = None
    return repository


@pytest.fixture
def temp_config_file() -> Generator[str, None, None]:
    """Create a temporary configuration file for testing."""
    test_config = {
        "logging": {
            "level": "DEBUG",
            "format": "text",
            "file": {"enabled": False},
            "console": {"enabled": True, "level": "DEBUG"},
        },
        "fetch": {"timeout": 5.0, "max_retries": 2, "retry_delay": 0.0, "retry_max_delay": 0.0},
        "repositories": [
            {"id": "local", "type": "file", "base": str(RESOURCES_DIR)},
        ],
    }

    with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False, mode="w") as tmp:
        yaml.dump(test_config, tmp)
        tmp_path = tmp.name

    yield tmp_path

    try:
        os.unlink(tmp_path)
    except (IOError, OSError):
        pass


@pytest.fixture
def config_manager(temp_config_file: str) -> Generator[ConfigManager, None, None]:
    """Create a ConfigManager instance for testing."""
    manager = ConfigManager(config_path=temp_config_file)
    manager.initialize()
    yield manager
    manager.shutdown()
