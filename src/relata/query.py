"""Object queries: property chains compiled to one joined SELECT."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relata.errors import ResolutionError, StatementError
from relata.expressions import POSTFIX_OPERATORS, Binary, Expression, Unary, normalize_operator
from relata.mapper import EntityMapper, ResultMapper, SelectItem
from relata.naming import NamingService
from relata.schema import EmbeddedSchema, MappingSchema, SchemaRegistry, default_registry
from relata.statements import Join, Select

if TYPE_CHECKING:
    from relata.adapters import DatabaseAdapter

logger = logging.getLogger(__name__)


@dataclass
class _Node:
    """An entity joined into the query under its own table aliases."""

    schema: MappingSchema
    index: int
    children: dict[str, _Node] = field(default_factory=dict)

    def table_alias(self, table: str) -> str:
        return f"{table}_{self.index}"

    def column_ref(self, prop: str) -> str:
        return f"{self.table_alias(self.schema.table_for(prop))}.{self.schema.column_for(prop)}"

    def embedded_ref(self, name: str, prop: str) -> str:
        emb = self.schema.embedded[name]
        return f"{self.table_alias(emb.table_for(prop))}.{emb.column_for(prop)}"

    def columns(self) -> dict[str, str]:
        return {prop: f"e{self.index}_{prop}" for prop in self.schema.columns}

    def embedded_columns(self) -> dict[str, dict[str, str]]:
        return {
            name: {prop: f"e{self.index}_{name}__{prop}" for prop in emb.columns}
            for name, emb in self.schema.embedded.items()
        }

    def build_mapper(self, identity: dict[tuple[type, Any], Any]) -> EntityMapper:
        mapper = EntityMapper(
            self.schema, self.columns(), self.embedded_columns(), identity
        )
        for name, child in self.children.items():
            mapper.add_component(name, child.build_mapper(identity))
        return mapper


@dataclass
class CompiledQuery:
    """SQL text plus everything needed to map its rows back to entities."""

    sql: str
    select_list: list[SelectItem]
    has_implicit_root: bool
    roots: dict[str | None, _Node]

    def result_mapper(self) -> ResultMapper:
        """A fresh mapper; one identity map spans the whole execution."""
        identity: dict[tuple[type, Any], Any] = {}
        return ResultMapper(
            self.select_list,
            {alias: node.build_mapper(identity) for alias, node in self.roots.items()},
            self.has_implicit_root,
        )

    def __str__(self) -> str:
        return self.sql


class ObjectQuery:
    """Query entities by property chains.

    ``ObjectQuery(User)`` scopes the query to an implicit root, so chains are
    relative to ``User``::

        ObjectQuery(User).with_("posts").where("name", "=", DB.esc("Alice")).all()

    Without a root, entities are added with ``from_`` under an alias that
    starts every chain::

        ObjectQuery().from_(User, "u").from_(Post, "p").select("u", "p.title")
    """

    def __init__(self, root: type | str | None = None, *, registry: SchemaRegistry | None = None):
        if registry is None:
            registry = getattr(root, "__registry__", None) or default_registry
        self.registry = registry
        self.root = registry.resolve_type(root) if root is not None else None
        self._roots: list[tuple[type, str]] = []
        self._with: list[str] = []
        self._select: list[Any] = []
        self._where: list[tuple[Any, ...]] = []
        self._order: list[tuple[Any, str | None]] = []
        self._limit: int | None = None
        self._offset: int | None = None

    # --- builders ---

    def from_(self, entity_type: type | str, alias: str | None = None) -> ObjectQuery:
        if self.root is not None:
            raise StatementError("from_() cannot be combined with an implicit root")
        entity_type = self.registry.resolve_type(entity_type)
        self._roots.append((entity_type, alias or self.registry.schema_for(entity_type).entity_name))
        return self

    def with_(self, *chains: str) -> ObjectQuery:
        self._with.extend(chains)
        return self

    def select(self, *items: Any) -> ObjectQuery:
        """Select entity chains, atomic chains or ``(expression, alias)`` pairs."""
        self._select.extend(items)
        return self

    def where(self, *args: Any) -> ObjectQuery:
        self._where.append(args)
        return self

    def order_by(self, chain: Any, direction: str | None = None) -> ObjectQuery:
        self._order.append((chain, direction))
        return self

    def limit(self, n: int | None) -> ObjectQuery:
        self._limit = n
        return self

    def offset(self, n: int | None) -> ObjectQuery:
        self._offset = n
        return self

    # --- compilation ---

    def compile(self, adapter: Any = None) -> CompiledQuery:
        return _Compiler(self).compile(adapter or self._adapter())

    def _adapter(self) -> DatabaseAdapter:
        root = self.root or (self._roots[0][0] if self._roots else None)
        if root is None:
            raise StatementError("query has no root entity")
        return self.registry.adapter_for(self.registry.schema_for(root))

    def execute(self, adapter: DatabaseAdapter | None = None) -> list[dict[str, Any]]:
        adapter = adapter or self._adapter()
        compiled = self.compile(adapter)
        logger.debug("running object query: %s", compiled.sql)
        return compiled.result_mapper().map(adapter.exec_select(compiled.sql))

    def all(self, adapter: DatabaseAdapter | None = None) -> list[Any]:
        """Root entities of an implicit-root query without an explicit selection."""
        if self.root is None or self._select:
            raise StatementError("all() needs an implicit root and no explicit selection")
        name = self.registry.schema_for(self.root).entity_name
        return [row[name] for row in self.execute(adapter)]

    def first(self, adapter: DatabaseAdapter | None = None) -> Any:
        entities = self.all(adapter)
        return entities[0] if entities else None


class _Compiler:
    def __init__(self, query: ObjectQuery) -> None:
        self.query = query
        self.registry = query.registry
        self.implicit = query.root is not None
        if self.implicit:
            self.naming = self.registry.naming(query.root)
        else:
            self.naming = NamingService(self.registry)
            for entity_type, alias in query._roots:
                self.naming.set_alias(entity_type, alias)
        self.roots: dict[str | None, _Node] = {}
        self.order: list[tuple[_Node, _Node | None, str | None]] = []
        self._count = 0

    def _new_node(self, schema: MappingSchema, parent: _Node | None, name: str | None) -> _Node:
        node = _Node(schema, self._count)
        self._count += 1
        self.order.append((node, parent, name))
        return node

    def _split(self, chain: str) -> tuple[_Node, list[str]]:
        segments = chain.split(".") if chain else []
        if self.implicit:
            return self.roots[None], segments
        if not segments or segments[0] not in self.roots:
            raise ResolutionError(chain, "unknown root alias")
        return self.roots[segments[0]], segments[1:]

    def _node_for(self, chain: str) -> _Node:
        """Join every component along ``chain``; ``chain`` must end at an entity."""
        node, segments = self._split(chain)
        walked = [] if self.implicit else [chain.split(".")[0]]
        for seg in segments:
            walked.append(seg)
            schema = self.naming.resolve_schema(".".join(walked))
            child = node.children.get(seg)
            if child is None:
                child = self._new_node(schema, node, seg)
                node.children[seg] = child
            node = child
        return node

    def _parent_chain(self, chain: str) -> tuple[str, str]:
        head, _, leaf = chain.rpartition(".")
        return head, leaf

    def _column(self, chain: str) -> str:
        """Resolve a chain to a qualified column reference, joining as needed."""
        resolution = self.naming.resolve(chain)
        if isinstance(resolution, MappingSchema):
            node = self._node_for(chain)
            return node.column_ref(node.schema.primary_key())
        head, leaf = self._parent_chain(chain)
        parent = self.naming.resolve(head) if head else None
        if parent is not None and not isinstance(parent, MappingSchema):
            # atomic of an embedded value object
            owner_chain, emb_name = self._parent_chain(head)
            return self._node_for(owner_chain).embedded_ref(emb_name, leaf)
        return self._node_for(head).column_ref(leaf)

    def _translate(self, operand: Any) -> Any:
        if isinstance(operand, str):
            return self._column(operand)
        if isinstance(operand, Binary):
            return Binary(self._translate(operand.left), operand.op, self._translate(operand.right))
        if isinstance(operand, Unary):
            return Unary(operand.op, self._translate(operand.operand))
        return operand

    def _condition(self, args: tuple[Any, ...]) -> tuple[Any, ...]:
        if len(args) == 3:
            left, op, right = args
            return (self._translate(left), op, self._translate(right))
        if len(args) == 2:
            first, second = args
            if isinstance(second, str) and normalize_operator(second) in POSTFIX_OPERATORS:
                return (self._translate(first), second)
            return (first, self._translate(second))
        return tuple(self._translate(a) for a in args)

    def _select_items(self) -> list[tuple[SelectItem, Any]]:
        query = self.query
        items: list[tuple[SelectItem, Any]] = []
        if not query._select:
            if self.implicit:
                name = self.roots[None].schema.entity_name
                return [(SelectItem(name, ""), "")]
            return [(SelectItem(alias, alias), alias) for alias in self.roots]
        for entry in query._select:
            if isinstance(entry, tuple):
                expr, alias = entry
                if isinstance(expr, str):
                    items.append((SelectItem(alias, expr), expr))
                else:
                    items.append((SelectItem(alias), self._translate(expr)))
            elif isinstance(entry, str):
                items.append((SelectItem(entry, entry), entry))
            else:
                raise StatementError(f"cannot select {entry!r}")
        return items

    def compile(self, adapter: Any) -> CompiledQuery:
        query = self.query
        if self.implicit:
            assert query.root is not None
            self.roots[None] = self._new_node(self.registry.schema_for(query.root), None, None)
        else:
            if not query._roots:
                raise StatementError("query has no root entity")
            for entity_type, alias in query._roots:
                if alias in self.roots:
                    raise StatementError(f"duplicate root alias '{alias}'")
                self.roots[alias] = self._new_node(self.registry.schema_for(entity_type), None, None)

        for chain in query._with:
            self._node_for(chain)
        raw_columns: list[tuple[Any, str]] = []
        select_list = []
        for item, target in self._select_items():
            select_list.append(item)
            if item.chain is None:
                raw_columns.append((target, item.alias))
            else:
                self._touch(item.chain)
        conditions = [self._condition(args) for args in query._where]
        ordering = [
            (self._column(c) if isinstance(c, str) else self._translate(c), d)
            for c, d in query._order
        ]

        stmt = Select(*self._columns(), *raw_columns)
        self._joins(stmt)
        for args in conditions:
            stmt.where(*args)
        for column, direction in ordering:
            stmt.order_by(column, direction)
        if self._has_fan_out():
            for node in self.roots.values():
                stmt.order_by(node.column_ref(node.schema.primary_key()))
        stmt.limit(query._limit).offset(query._offset)
        return CompiledQuery(stmt.compile(adapter), select_list, self.implicit, self.roots)

    def _touch(self, chain: str) -> None:
        """Make sure the entity a selected chain reads from is joined."""
        if not chain or (not self.implicit and "." not in chain):
            return
        if isinstance(self.naming.resolve(chain), MappingSchema):
            self._node_for(chain)
            return
        head, _ = self._parent_chain(chain)
        if head and isinstance(self.naming.resolve(head), EmbeddedSchema):
            head, _ = self._parent_chain(head)
        self._node_for(head)

    def _has_fan_out(self) -> bool:
        return any(
            parent is not None and parent.schema.is_to_many_component(name)
            for _, parent, name in self.order
            if name is not None
        )

    def _columns(self) -> list[tuple[str, str]]:
        columns = []
        for node, _, _ in self.order:
            for prop, alias in node.columns().items():
                columns.append((node.column_ref(prop), alias))
            for name, cols in node.embedded_columns().items():
                for prop, alias in cols.items():
                    columns.append((node.embedded_ref(name, prop), alias))
        return columns

    def _joins(self, stmt: Select) -> None:
        first = True
        for node, parent, name in self.order:
            schema = node.schema
            primary = (schema.table, node.table_alias(schema.table))
            if parent is None:
                if first:
                    stmt.from_(primary)
                    first = False
                else:
                    stmt.joins.append(Join(primary, "CROSS"))
            else:
                assert name is not None
                stmt.joins.append(Join(primary, "LEFT", [self._link_condition(parent, name, node)]))
            pk_ref = node.column_ref(schema.primary_key())
            for table in schema.secondary_tables:
                alias = node.table_alias(table)
                condition = Binary(f"{alias}.{schema.column_for(schema.primary_key())}", "=", pk_ref)
                stmt.joins.append(Join((table, alias), "LEFT", [condition]))

    def _link_condition(self, parent: _Node, name: str, child: _Node) -> Expression:
        link = parent.schema.join_link(name)
        if link.fk_on_local:
            return Binary(child.column_ref(link.key_property), "=", parent.column_ref(link.fk_property))
        return Binary(child.column_ref(link.fk_property), "=", parent.column_ref(link.key_property))


__all__ = ["CompiledQuery", "ObjectQuery"]
