"""Turning flat, join-produced rows back into entity graphs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from relata.errors import ResolutionError
from relata.schema import MappingSchema

_UNSET = object()


@dataclass(frozen=True)
class SelectItem:
    """One entry of a query's selection.

    ``chain`` is the property chain of an entity or atomic selection, relative
    to the implicit root, or starting with the root alias for explicit roots.
    ``chain`` is ``None`` for raw expressions, read straight from ``alias``.
    """

    alias: str
    chain: str | None = None


class EntityMapper:
    """Maps the columns of one entity node of a join to entity instances.

    Resolves rows through an identity map keyed by entity type and primary
    key. Mappers of one result set share it, so an entity reached over
    several join paths is a single object.
    """

    def __init__(
        self,
        schema: MappingSchema,
        columns: dict[str, str],
        embedded_columns: dict[str, dict[str, str]] | None = None,
        identity: dict[tuple[type, Any], Any] | None = None,
    ) -> None:
        self.schema = schema
        self.columns = columns
        self.embedded_columns = embedded_columns or {}
        self.pk_key = columns[schema.primary_key()]
        self.to_one: dict[str, EntityMapper] = {}
        self.to_many: dict[str, EntityMapper] = {}
        self._identity = identity if identity is not None else {}
        self._last_pk: Any = _UNSET
        self._last_entity: Any = None

    def add_component(self, name: str, mapper: EntityMapper) -> None:
        if self.schema.is_to_many_component(name):
            self.to_many[name] = mapper
        else:
            self.to_one[name] = mapper

    def get_last_entity(self) -> Any:
        return self._last_entity

    def get_mapper_for_chain(self, segments: list[str]) -> tuple[EntityMapper, list[str]]:
        """Walk mapped components; return the mapper and the remaining attribute path."""
        mapper = self
        for i, seg in enumerate(segments):
            child = mapper.to_one.get(seg) or mapper.to_many.get(seg)
            if child is None:
                rest = segments[i:]
                if rest[0] in mapper.schema.columns or rest[0] in mapper.schema.embedded:
                    return mapper, rest
                raise ResolutionError(".".join(segments), f"'{seg}' is not selected")
            mapper = child
        return mapper, []

    def map_row(self, row: Mapping[str, Any]) -> tuple[Any, bool]:
        """Map one row; return the entity (or ``None``) and whether it is new."""
        raw_pk = row.get(self.pk_key)
        if raw_pk is None:
            self._last_pk = None
            self._last_entity = None
            return None, False
        pk = self.schema.primary_column().load(raw_pk)
        is_new = pk != self._last_pk
        if is_new:
            key = (self.schema.entity_type, pk)
            entity = self._identity.get(key)
            if entity is None:
                entity = self._create(row)
                self._identity[key] = entity
            self._last_pk = pk
            self._last_entity = entity
        entity = self._last_entity
        for name, mapper in self.to_one.items():
            child, _ = mapper.map_row(row)
            if is_new:
                entity._set_loaded_component(name, child)
        for name, mapper in self.to_many.items():
            collection = entity._init_collection(name)
            child, _ = mapper.map_row(row)
            if child is not None:
                collection._add_loaded(child)
        return entity, is_new

    def _create(self, row: Mapping[str, Any]) -> Any:
        atomics = {prop: row.get(key) for prop, key in self.columns.items()}
        embedded = {
            name: {prop: row.get(key) for prop, key in cols.items()}
            for name, cols in self.embedded_columns.items()
        }
        return self.schema.entity_type._load(atomics, embedded)  # type: ignore[attr-defined]


class ResultMapper:
    """Folds a row stream into one result dict per distinct root row.

    A row produces a result only when at least one root mapper sees a new
    primary key; continuation rows only add members to loaded collections.
    """

    def __init__(
        self,
        select_list: list[SelectItem],
        root_mappers: dict[str | None, EntityMapper],
        has_implicit_root: bool,
    ) -> None:
        self.select_list = select_list
        self.root_mappers = root_mappers
        self.has_implicit_root = has_implicit_root
        self._extractors = [(item.alias, self._extractor(item)) for item in select_list]

    def _extractor(self, item: SelectItem) -> Any:
        if item.chain is None:
            return lambda row: row.get(item.alias)
        segments = item.chain.split(".") if item.chain else []
        if self.has_implicit_root:
            root = self.root_mappers[None]
        else:
            try:
                root = self.root_mappers[segments[0]]
            except (IndexError, KeyError):
                raise ResolutionError(item.chain, "unknown root alias") from None
            segments = segments[1:]
        mapper, path = root.get_mapper_for_chain(segments)

        def extract(row: Mapping[str, Any]) -> Any:
            value = mapper.get_last_entity()
            for attr in path:
                if value is None:
                    return None
                value = getattr(value, attr)
            return value

        return extract

    def map(self, rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        results = []
        for row in rows:
            is_new = False
            for mapper in self.root_mappers.values():
                _, new = mapper.map_row(row)
                is_new = is_new or new
            if is_new:
                results.append({alias: extract(row) for alias, extract in self._extractors})
        return results
