"""Collection values of to-many relation properties."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Iterator

from relata import persistence
from relata.errors import RelationTypeError

if TYPE_CHECKING:
    from relata.types import Entity


class EntityCollection:
    """Ordered members of a to-many relation, keyed by member primary key.

    Members without a primary key are keyed by identity until they are
    inserted, at which point the collection re-keys them.
    """

    def __init__(self, owner: Entity, name: str) -> None:
        schema = owner.schema()
        self.owner = owner
        self.name = name
        self.link = schema.join_link(name)
        self.target_type = schema.registry.resolve_type(schema.get_component(name).target)
        self._members: dict[Any, Entity] = {}
        self._removed: list[Entity] = []
        self._persistent = True

    @staticmethod
    def _key(entity: Entity) -> Any:
        pk = entity.pk()
        return pk if pk is not None else ("transient", id(entity))

    def _check(self, entity: Any) -> None:
        if not isinstance(entity, self.target_type):
            raise RelationTypeError(
                self.owner.__entity_name__, self.name,
                self.target_type.__entity_name__, type(entity).__name__,
            )

    def append(self, entity: Entity) -> None:
        self._check(entity)
        key = self._key(entity)
        if key in self._members:
            return
        self._members[key] = entity
        if entity in self._removed:
            self._removed.remove(entity)
        if entity.pk() is None:
            entity.add_pk_change_listener(self)
        self._persistent = False
        self.owner._persistent = False
        persistence.link_member(self.owner, self.name, entity)

    def extend(self, entities: Iterable[Entity]) -> None:
        for entity in entities:
            self.append(entity)

    def remove(self, entity: Entity) -> None:
        key = self._key(entity)
        if self._members.get(key) is not entity:
            raise ValueError(f"{entity!r} is not in {self.owner.__entity_name__}.{self.name}")
        del self._members[key]
        self._removed.append(entity)
        self._persistent = False
        self.owner._persistent = False
        persistence.unlink_member(self.owner, self.name, entity)

    def replace(self, entities: Iterable[Entity]) -> None:
        entities = list(entities)
        for entity in entities:
            self._check(entity)
        for member in list(self._members.values()):
            if member not in entities:
                self.remove(member)
        self.extend(entities)

    def _add_loaded(self, entity: Entity) -> None:
        self._members.setdefault(self._key(entity), entity)

    def notify_pk_creation(self, entity: Entity) -> None:
        for key, member in list(self._members.items()):
            if member is entity:
                del self._members[key]
                self._members[entity.pk()] = entity
                return

    def notify_owner_deletion(self) -> None:
        """Null the foreign key of every member after the owner was deleted."""
        for member in self._members.values():
            member._write_atomic(self.link.fk_property, None, persistent=True)
            persistence.clear_inverse(self.owner, self.name, member)
        self._members.clear()
        self._removed.clear()
        self._persistent = True

    def is_persistent(self) -> bool:
        return self._persistent

    def save(self, guard: set[int]) -> None:
        for member in [*self._removed, *self._members.values()]:
            persistence.save(member, guard)
        self._removed.clear()
        self._persistent = True

    def pks(self) -> list[Any]:
        return [m.pk() for m in self._members.values()]

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._members.values()))

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, entity: object) -> bool:
        return any(m is entity for m in self._members.values())

    def __getitem__(self, index: int) -> Entity:
        return list(self._members.values())[index]

    def __repr__(self) -> str:
        members = list(self._members.values())
        return f"EntityCollection({self.owner.__entity_name__}.{self.name}, {members!r})"
