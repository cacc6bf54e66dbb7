"""Tests for CLI model loader."""

import textwrap

import pytest

from relata.cli._loader import load_models


def test_load_models_from_path(tmp_path):
    """Load models from a Python file path."""
    models_file = tmp_path / "widget_models.py"
    models_file.write_text(
        textwrap.dedent("""\
        from relata import Column, Component, Entity

        class Widget(Entity):
            @classmethod
            def setup(cls, schema):
                schema.table = "widgets"
                schema.columns = {
                    "id": Column("int", primary=True, generation_strategy="auto"),
                    "gizmo_id": Column("int"),
                }
                schema.components = {
                    "gizmo": Component("GizmoPart", "many-to-one", join_column="gizmo_id"),
                }

        class Gizmo(Entity, name="GizmoPart"):
            @classmethod
            def setup(cls, schema):
                schema.table = "gizmos"
                schema.columns = {"id": Column("int", primary=True)}
    """)
    )

    entity_types = load_models(models_path=str(models_file))
    assert set(entity_types) == {"Widget", "GizmoPart"}


def test_load_models_from_import():
    """Load models from Python import path (using the shared test models)."""
    entity_types = load_models(models="tests.models")
    assert {"User", "Post", "Topic", "Category", "Profile"} == set(entity_types)


def test_load_models_missing_path():
    with pytest.raises(FileNotFoundError):
        load_models(models_path="/nonexistent/models.py")


def test_load_models_no_args():
    with pytest.raises(ValueError, match="One of"):
        load_models()
