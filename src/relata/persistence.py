"""Writing entities: dirty tracking, table routing and foreign-key sync."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from relata.errors import PersistenceError, SchemaError
from relata.expressions import Parameter
from relata.schema import Component, MappingSchema, OnDelete
from relata.statements import Delete, Insert, Select, Update

if TYPE_CHECKING:
    from relata.types import Entity

logger = logging.getLogger(__name__)


class DeferredForeignKey:
    """Writes a foreign key into ``holder`` once ``referenced`` gets its primary key."""

    def __init__(self, holder: Entity, fk_property: str, key_property: str) -> None:
        self.holder = holder
        self.fk_property = fk_property
        self.key_property = key_property

    def notify_pk_creation(self, referenced: Entity) -> None:
        if self.holder._pending_fk.get(self.fk_property) is not referenced:
            return
        del self.holder._pending_fk[self.fk_property]
        self.holder._write_atomic(self.fk_property, referenced._get_atomic(self.key_property))


def assign_foreign_key(
    holder: Entity, fk_property: str, referenced: Entity, key_property: str
) -> None:
    """Copy ``referenced.key_property`` into ``holder.fk_property``, now or on insert."""
    value = referenced._get_atomic(key_property)
    if value is not None:
        holder._pending_fk.pop(fk_property, None)
        holder._write_atomic(fk_property, value)
        return
    if key_property != referenced.schema().primary_key():
        raise PersistenceError(
            f"cannot set {holder.__entity_name__}.{fk_property}: "
            f"{referenced.__entity_name__}.{key_property} is not set"
        )
    logger.debug(
        "deferring %s.%s until %r is inserted", holder.__entity_name__, fk_property, referenced
    )
    holder._pending_fk[fk_property] = referenced
    holder._persistent = False
    referenced.add_pk_change_listener(DeferredForeignKey(holder, fk_property, key_property))


def _clear_foreign_key(holder: Entity, fk_property: str) -> None:
    holder._pending_fk.pop(fk_property, None)
    holder._write_atomic(fk_property, None)


def _inverse_name(owner: Entity, name: str) -> str | None:
    comp = owner.schema().get_component(name)
    if comp.mapped_by is not None:
        return comp.mapped_by
    target = owner.schema().target_schema(name)
    for remote_name, remote in target.components.items():
        if isinstance(remote, Component) and remote.mapped_by == name:
            if owner.__registry__.resolve_type(remote.target) is type(owner):
                return remote_name
    return None


def sync_to_one(entity: Entity, name: str, value: Entity | None, old: Entity | None) -> None:
    """Propagate a to-one assignment into whichever side holds the foreign key."""
    link = entity.schema().join_link(name)
    if link.fk_on_local:
        if value is None:
            _clear_foreign_key(entity, link.fk_property)
        else:
            assign_foreign_key(entity, link.fk_property, value, link.key_property)
        return
    if old is not None and old is not value:
        _clear_foreign_key(old, link.fk_property)
        entity._detached.append(old)
    if value is not None:
        assign_foreign_key(value, link.fk_property, entity, link.key_property)


def link_member(owner: Entity, name: str, member: Entity) -> None:
    link = owner.schema().join_link(name)
    assign_foreign_key(member, link.fk_property, owner, link.key_property)
    inverse = _inverse_name(owner, name)
    if inverse is not None:
        member._components[inverse] = _loaded_slot(owner)


def unlink_member(owner: Entity, name: str, member: Entity) -> None:
    link = owner.schema().join_link(name)
    _clear_foreign_key(member, link.fk_property)
    clear_inverse(owner, name, member)


def clear_inverse(owner: Entity, name: str, member: Entity) -> None:
    inverse = _inverse_name(owner, name)
    if inverse is None:
        return
    slot = member._components.get(inverse)
    if slot is not None and slot.value is owner:
        member._components[inverse] = _loaded_slot(None)


def _loaded_slot(value: Any) -> Any:
    from relata.types import Slot

    return Slot(value, True)


def _is_collection(value: Any) -> bool:
    from relata.collection import EntityCollection

    return isinstance(value, EntityCollection)


# --- writing ---


def save(entity: Entity, guard: set[int] | None = None) -> None:
    """INSERT or UPDATE ``entity``, then cascade into loaded relations.

    ``guard`` holds the ids of entities already visited by this save, so
    bidirectional relations do not recurse forever.
    """
    if entity.pk() is None:
        insert(entity, guard)
    else:
        update(entity, guard)


def insert(entity: Entity, guard: set[int] | None = None) -> None:
    _write(entity, guard, _insert_rows)


def update(entity: Entity, guard: set[int] | None = None) -> None:
    _write(entity, guard, _update_rows)


def _write(entity: Entity, guard: set[int] | None, write: Any) -> None:
    guard = set() if guard is None else guard
    if id(entity) in guard or entity._persistent:
        return
    guard.add(id(entity))
    _resolve_pending(entity, guard)
    write(entity)
    _cascade(entity, guard)
    entity._persistent = True


def _resolve_pending(entity: Entity, guard: set[int]) -> None:
    for fk_property, referenced in list(entity._pending_fk.items()):
        if referenced.pk() is None:
            save(referenced, guard)
        if entity._pending_fk.get(fk_property) is referenced:
            if referenced.pk() is None:
                raise PersistenceError(
                    f"cannot save {entity.__entity_name__}: {fk_property} references "
                    f"an unsaved {referenced.__entity_name__}"
                )
            assign_foreign_key(
                entity, fk_property, referenced, referenced.schema().primary_key()
            )


def _dirty_by_table(entity: Entity) -> tuple[dict[str, dict[str, Any]], list[Any]]:
    schema = entity.schema()
    values: dict[str, dict[str, Any]] = {t: {} for t in schema.tables()}
    slots = []
    for name, slot in entity._atomics.items():
        if not slot.persistent:
            values[schema.table_for(name)][schema.column_for(name)] = slot.value
            slots.append(slot)
    for name, emb_schema in schema.embedded.items():
        emb_slot = entity._embedded.get(name)
        if emb_slot is None:
            continue
        emb = emb_slot.value
        if emb is None:
            if not emb_slot.persistent:
                for prop in emb_schema.columns:
                    values[emb_schema.table_for(prop)][emb_schema.column_for(prop)] = None
                slots.append(emb_slot)
            continue
        for prop, slot in emb.dirty_values():
            values[emb_schema.table_for(prop)][emb_schema.column_for(prop)] = slot.value
            slots.append(slot)
        slots.append(emb_slot)
    return values, slots


def _insert_rows(entity: Entity) -> None:
    schema = entity.schema()
    adapter = schema.registry.adapter_for(schema)
    pk_name = schema.primary_key()
    pk_column = schema.column_for(pk_name)
    values, slots = _dirty_by_table(entity)
    pk_value = entity.pk()
    if pk_value is None and not schema.primary_column().is_generated:
        raise PersistenceError(
            f"cannot insert {schema.entity_name}: primary key '{pk_name}' is not set"
        )
    logger.debug("inserting %s into %s", schema.entity_name, ", ".join(schema.tables()))
    generated = Insert(schema.table).values(values[schema.table]).exec(
        adapter, return_insert_id=pk_value is None
    )
    if pk_value is None:
        if generated is None:
            raise PersistenceError(f"{schema.entity_name}: the database returned no generated key")
        entity._write_atomic(pk_name, schema.primary_column().load(generated), persistent=True)
        pk_value = entity.pk()
    for table in schema.secondary_tables:
        row = {pk_column: pk_value, **values[table]}
        Insert(table).values(row).exec(adapter, return_insert_id=False)
    for slot in slots:
        slot.persistent = True
    entity._notify_pk_creation()


def _update_rows(entity: Entity) -> None:
    schema = entity.schema()
    adapter = schema.registry.adapter_for(schema)
    pk_column = schema.column_for(schema.primary_key())
    if entity.pk() is None:
        raise PersistenceError(f"cannot update {schema.entity_name}: primary key is not set")
    values, slots = _dirty_by_table(entity)
    pk_param = Parameter(entity.pk())
    for table, row in values.items():
        if not row:
            continue
        logger.debug("updating %s in %s", schema.entity_name, table)
        Update(table).values(row).where(pk_column, "=", pk_param).exec(adapter)
    for slot in slots:
        slot.persistent = True


def _cascade(entity: Entity, guard: set[int]) -> None:
    for slot in list(entity._components.values()):
        value = slot.value
        if _is_collection(value):
            value.save(guard)
        elif value is not None:
            save(value, guard)
        slot.persistent = True
    for detached in entity._detached:
        save(detached, guard)
    entity._detached.clear()


# --- deleting ---


def delete_by_pk(entity: Entity, pk: Any) -> None:
    """Delete the rows keyed by ``pk`` after applying the on-delete policies."""
    if pk is None:
        return
    schema = entity.schema()
    adapter = schema.registry.adapter_for(schema)
    loaded = entity.pk() == pk
    for name, comp in schema.components.items():
        if not isinstance(comp, Component) or comp.on_delete is None:
            continue
        if OnDelete(comp.on_delete) is OnDelete.CASCADE:
            _delete_dependents(entity, schema, name, pk, loaded)
        else:
            _null_dependents(entity, schema, name, pk, loaded)
    pk_column = schema.column_for(schema.primary_key())
    pk_param = Parameter(pk)
    logger.debug("deleting %s %r", schema.entity_name, pk)
    for table in reversed(schema.tables()):
        Delete(table).where(pk_column, "=", pk_param).exec(adapter)
    if loaded:
        _mark_transient(entity)


def _mark_transient(entity: Entity) -> None:
    pk_name = entity.schema().primary_key()
    entity._atomics.pop(pk_name, None)
    for slot in entity._atomics.values():
        slot.persistent = False
    for slot in entity._embedded.values():
        slot.persistent = False
        if slot.value is not None:
            slot.value._mark_dirty()
    entity._persistent = False


def _local_key(entity: Entity, schema: MappingSchema, name: str, pk: Any, loaded: bool) -> Any:
    """The value dependents reference, or a subselect producing it."""
    key_property = schema.join_link(name).key_property
    if key_property == schema.primary_key():
        return Parameter(pk)
    if loaded and key_property in entity._atomics:
        return Parameter(entity._get_atomic(key_property))
    if not schema.get_column(key_property).is_unique:
        raise SchemaError(
            f"{schema.entity_name}.{name}: on_delete through '{key_property}' requires "
            "it to be unique"
        )
    return (
        Select(schema.column_for(key_property))
        .from_(schema.table_for(key_property))
        .where(schema.column_for(schema.primary_key()), "=", Parameter(pk))
    )


def _null_dependents(
    entity: Entity, schema: MappingSchema, name: str, pk: Any, loaded: bool
) -> None:
    link = schema.join_link(name)
    target = schema.target_schema(name)
    fk_column = target.column_for(link.fk_property)
    key = _local_key(entity, schema, name, pk, loaded)
    Update(target.table_for(link.fk_property)).values({fk_column: None}).where(
        fk_column, "=", key
    ).exec(schema.registry.adapter_for(target))
    slot = entity._components.get(name) if loaded else None
    if slot is None or slot.value is None:
        return
    if _is_collection(slot.value):
        slot.value.notify_owner_deletion()
    else:
        slot.value._write_atomic(link.fk_property, None, persistent=True)
        entity._components[name] = _loaded_slot(None)


def _delete_dependents(
    entity: Entity, schema: MappingSchema, name: str, pk: Any, loaded: bool
) -> None:
    from relata.query import ObjectQuery

    link = schema.join_link(name)
    slot = entity._components.get(name) if loaded else None
    if slot is not None and slot.value is not None:
        members = list(slot.value) if _is_collection(slot.value) else [slot.value]
        for member in members:
            member.delete()
    target_type = schema.registry.resolve_type(schema.get_component(name).target)
    key = _local_key(entity, schema, name, pk, loaded)
    for member in ObjectQuery(target_type).where(link.fk_property, "=", key).all():
        member.delete()
    if slot is not None:
        if _is_collection(slot.value):
            slot.value.notify_owner_deletion()
        else:
            entity._components[name] = _loaded_slot(None)
