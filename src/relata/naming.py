"""Property-chain resolution against the schema graph."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Union

from relata.errors import ResolutionError, SchemaError
from relata.schema import AtomicType, Component, EmbeddedSchema, MappingSchema

if TYPE_CHECKING:
    from relata.schema import SchemaRegistry

Resolution = Union[MappingSchema, EmbeddedSchema, AtomicType]


class NamingService:
    """Resolves dotted property chains to a schema or a scalar type tag.

    With an implicit root, bare property names resolve against the root
    schema. Without one, the first segment of a chain must be a registered
    alias or an entity type name. Every resolved prefix is memoized and
    never re-resolved.
    """

    def __init__(self, registry: SchemaRegistry, implicit_root: type | None = None) -> None:
        self._registry = registry
        self.implicit_root = implicit_root
        self._root_schema = registry.schema_for(implicit_root) if implicit_root else None
        self._aliases: dict[str, Resolution] = {}
        self._lock = threading.Lock()

    def set_alias(self, entity_type: type | str, alias: str) -> None:
        """Register ``alias`` as an explicit root standing for ``entity_type``."""
        schema = self._registry.schema_for(entity_type)
        with self._lock:
            self._aliases[alias] = schema

    def is_cached(self, name: str) -> bool:
        return name in self._aliases

    def resolve(self, name: str) -> Resolution:
        resolution = self._aliases.get(name)
        if resolution is not None:
            return resolution
        found = self._search(name)
        with self._lock:
            for prefix, value in found.items():
                self._aliases.setdefault(prefix, value)
            return self._aliases[name]

    def resolve_schema(self, name: str) -> MappingSchema:
        """Resolve a chain that must end at an entity."""
        resolution = self.resolve(name)
        if not isinstance(resolution, MappingSchema):
            raise ResolutionError(name, "does not refer to an entity")
        return resolution

    def _search(self, name: str) -> dict[str, Resolution]:
        segments = name.split(".")
        if not all(segments):
            raise ResolutionError(name)
        found: dict[str, Resolution] = {}

        if self._root_schema is None:
            root_name = segments.pop(0)
            root = self._aliases.get(root_name)
            if root is None:
                try:
                    root = self._registry.schema_for(root_name)
                except SchemaError:
                    raise ResolutionError(name, f"unknown root '{root_name}'") from None
                found[root_name] = root
            walked = [root_name]
        else:
            root = self._root_schema
            walked = []

        current: Resolution | None = root
        for seg in segments:
            if not isinstance(current, (MappingSchema, EmbeddedSchema)):
                raise ResolutionError(name, "only the last segment can be an atomic property")
            walked.append(seg)
            prefix = ".".join(walked)
            if isinstance(current, MappingSchema):
                comp = current.components.get(seg)
                if isinstance(comp, Component):
                    current = current.target_schema(seg)
                    found[prefix] = current
                    continue
                if seg in current.embedded:
                    current = current.embedded[seg]
                    found[prefix] = current
                    continue
            col = current.columns.get(seg)
            if col is None:
                raise ResolutionError(name, f"unknown property '{seg}'")
            current = col.atomic_type
            found[prefix] = current
        return found
