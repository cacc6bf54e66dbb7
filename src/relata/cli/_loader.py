"""Model loader: import a Python module and discover its Entity types."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

from relata.types import Entity


def load_models(models: str | None = None, models_path: str | None = None) -> dict[str, type[Entity]]:
    """Load Entity classes from a Python module.

    Args:
        models: Dotted Python import path (e.g. 'myapp.models')
        models_path: Filesystem path to a Python file

    Returns:
        Entity types keyed by entity name
    """
    if models_path:
        path = Path(models_path).resolve()
        if not path.exists():
            raise FileNotFoundError(f"Models path not found: {models_path}")
        parent = str(path.parent)
        if parent not in sys.path:
            sys.path.insert(0, parent)
        module = importlib.import_module(path.stem)
    elif models:
        module = importlib.import_module(models)
    else:
        raise ValueError("One of --models or --models-path is required")

    entity_types: dict[str, type[Entity]] = {}
    for attr_name in dir(module):
        obj = getattr(module, attr_name)
        if isinstance(obj, type) and issubclass(obj, Entity) and obj is not Entity:
            entity_types[obj.__entity_name__] = obj
    return entity_types
