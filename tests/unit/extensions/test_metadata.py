"""Unit tests for the extension metadata model."""

from __future__ import annotations

import pydantic
import pytest

from extrepo.extensions.metadata import ArtifactCoordinate, ExtensionMetadata
from extrepo.extensions.parser import new_field_set


def _metadata(**overrides: object) -> ExtensionMetadata:
    values = {
        "category": "processor",
        "group_id": "org.example",
        "artifact_id": "widget",
        "version": "1.2.0",
        "packaging": "nar",
    }
    values.update(overrides)
    return ExtensionMetadata(**values)


def test_defaults_for_name_and_description() -> None:
    """Test that name and description fall back to the artifact identity."""
    metadata = _metadata()

    assert metadata.name == "widget"
    assert metadata.description == "org.example.widget"
    assert metadata.locator_info is None


def test_declared_name_and_description_are_kept() -> None:
    """Test that explicit values override the defaults."""
    metadata = _metadata(name="Widget", description="Makes widgets")

    assert metadata.name == "Widget"
    assert metadata.description == "Makes widgets"


@pytest.mark.parametrize("field", ["category", "group_id", "artifact_id", "version", "packaging"])
def test_required_field_missing(field: str) -> None:
    """Test that every required field rejects None and the empty string."""
    with pytest.raises(pydantic.ValidationError, match=field):
        _metadata(**{field: None})
    with pytest.raises(ValueError, match="Null or empty value"):
        _metadata(**{field: ""})


def test_metadata_is_immutable() -> None:
    """Test that metadata cannot be changed after construction."""
    metadata = _metadata()

    with pytest.raises(pydantic.ValidationError):
        metadata.version = "2.0.0"


def test_coordinate_and_gav() -> None:
    """Test the fetch coordinate and GAV string."""
    metadata = _metadata()

    assert metadata.gav == "org.example:widget:1.2.0"
    assert metadata.coordinate == ArtifactCoordinate("org.example", "widget", "nar", "1.2.0")
    assert str(metadata.coordinate) == "org.example:widget:nar:1.2.0"


def test_from_fields() -> None:
    """Test building metadata from a parsed field set."""
    fields = new_field_set()
    fields.update({
        "/groupId": "org.example",
        "/artifactId": "widget",
        "/version": "1.0",
        "/packaging": "nar",
        "/properties/nifiExtensionType": "processor",
    })

    metadata = ExtensionMetadata.from_fields(fields, locator_info="org/example/widget-1.0.pom")

    assert metadata.category == "processor"
    assert metadata.name == "widget"
    assert metadata.locator_info == "org/example/widget-1.0.pom"

    overridden = ExtensionMetadata.from_fields(fields, category="template")
    assert overridden.category == "template"


def test_from_fields_missing_category() -> None:
    """Test that a descriptor without a category is rejected."""
    fields = new_field_set()
    fields.update({"/groupId": "g", "/artifactId": "a", "/version": "1", "/packaging": "nar"})

    with pytest.raises(ValueError, match="category"):
        ExtensionMetadata.from_fields(fields)


def test_to_dict() -> None:
    """Test the dictionary representation."""
    data = _metadata().to_dict()

    assert data["group_id"] == "org.example"
    assert data["name"] == "widget"
    assert set(data) == {
        "category", "group_id", "artifact_id", "version", "packaging",
        "name", "description", "locator_info",
    }
