"""
Diff resolver: two snapshots → ordered statement sequence.

Manifesto:
    A generated migration has to run top to bottom against a live database
    without a human reordering it, and it has to be byte-identical when two
    operators generate it from the same inputs.

    - **Full redefinition:** An altered object is re-declared in full; the
      database treats a repeated DEFINE as an update, so no per-clause
      sub-diffs are needed
    - **Dependency order:** Parents before children on the way in,
      children before parents on the way out
    - **Deterministic:** Ties are broken by ``(kind rank, table, name)``,
      never by dict or filesystem order
    - **No silent loss:** A reference to a table that will not exist is a
      ``DanglingReferenceError``

Architecture:
    ::

        resolve_diff(old, new)
          ├── _check_references(new)         DanglingReferenceError
          ├── CREATE  only in new    topo-sorted, parents first
          ├── ALTER   in both, !=    grouped by table, lexicographic
          └── DROP    only in old    topo-sorted, children first

Examples:
    >>> statements = resolve_diff(SchemaSnapshot.empty(), current)
    >>> [s.operation.value for s in statements]
    ['create', 'create']

Tags:
    diff, ordering, topological-sort, migrations, surql-migrate
"""

from __future__ import annotations

import heapq
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import assert_never

from surql_migrate.core.errors import DanglingReferenceError, DiffError
from surql_migrate.core.logging import get_logger
from surql_migrate.schema.model import ObjectKey, ObjectKind, SchemaObject, SchemaSnapshot

logger = get_logger(__name__)


class Operation(str, Enum):
    CREATE = "create"
    ALTER = "alter"
    DROP = "drop"


@dataclass(frozen=True)
class Statement:
    """One executable instruction and the object it targets."""

    operation: Operation
    target: ObjectKey
    text: str
    previous: SchemaObject | None = field(default=None, compare=False)
    current: SchemaObject | None = field(default=None, compare=False)

    @classmethod
    def create(cls, obj: SchemaObject) -> Statement:
        return cls(Operation.CREATE, obj.key, obj.definition(), current=obj)

    @classmethod
    def alter(cls, previous: SchemaObject, current: SchemaObject) -> Statement:
        return cls(Operation.ALTER, current.key, current.definition(), previous, current)

    @classmethod
    def drop(cls, obj: SchemaObject) -> Statement:
        return cls(Operation.DROP, obj.key, obj.removal(), previous=obj)

    def reverse(self) -> Statement:
        """The statement that undoes this one."""
        match self.operation:
            case Operation.CREATE:
                assert self.current is not None
                return Statement.drop(self.current)
            case Operation.ALTER:
                assert self.previous is not None and self.current is not None
                return Statement.alter(self.current, self.previous)
            case Operation.DROP:
                assert self.previous is not None
                return Statement.create(self.previous)
            case _:
                assert_never(self.operation)

    def __str__(self) -> str:
        return f"{self.operation.value} {self.target}"


def _drop_rank(kind: ObjectKind) -> int:
    match kind:
        case ObjectKind.EVENT:
            return 0
        case ObjectKind.INDEX:
            return 1
        case ObjectKind.FIELD:
            return 2
        case ObjectKind.TABLE:
            return 3
        case ObjectKind.SCOPE:
            return 4
        case ObjectKind.ANALYZER:
            return 5
        case _:
            assert_never(kind)


def _create_key(obj: SchemaObject) -> tuple:
    return obj.key.sort_key


def _drop_key(obj: SchemaObject) -> tuple:
    return (_drop_rank(obj.kind), obj.table, obj.name)


def _alter_key(pair: tuple[SchemaObject, SchemaObject]) -> tuple:
    obj = pair[1]
    match obj.kind:
        case ObjectKind.ANALYZER | ObjectKind.SCOPE:
            group = (0, "")
        case ObjectKind.TABLE:
            group = (1, obj.name)
        case ObjectKind.FIELD | ObjectKind.EVENT | ObjectKind.INDEX:
            group = (1, obj.table)
        case _:
            assert_never(obj.kind)
    return (*group, obj.kind.rank, obj.name)


def dependencies(obj: SchemaObject) -> list[ObjectKey]:
    """Keys that must exist before ``obj`` can be defined."""
    deps = [ref for ref in obj.references() if ref != obj.key]
    if obj.parent is not None:
        deps.insert(0, obj.parent)
    return deps


def _toposort(
    objects: Sequence[SchemaObject],
    edges: Callable[[SchemaObject], Iterable[ObjectKey]],
    key: Callable[[SchemaObject], tuple],
) -> list[SchemaObject]:
    """
    Kahn's algorithm restricted to ``objects``.

    ``edges(obj)`` yields keys that must be emitted before ``obj``; keys
    outside ``objects`` are ignored. Ready objects are emitted smallest
    ``key`` first, so the output is fully deterministic.
    """
    by_key = {obj.key: obj for obj in objects}
    blockers: dict[ObjectKey, set[ObjectKey]] = {}
    dependents: dict[ObjectKey, list[ObjectKey]] = {k: [] for k in by_key}
    for obj in objects:
        before = {k for k in edges(obj) if k in by_key and k != obj.key}
        blockers[obj.key] = before
        for k in before:
            dependents[k].append(obj.key)

    heap = [(key(obj), obj.key.sort_key, obj.key) for obj in objects if not blockers[obj.key]]
    heapq.heapify(heap)
    ordered: list[SchemaObject] = []
    while heap:
        _, _, current = heapq.heappop(heap)
        ordered.append(by_key[current])
        for child in dependents[current]:
            blockers[child].discard(current)
            if not blockers[child]:
                heapq.heappush(heap, (key(by_key[child]), child.sort_key, child))

    if len(ordered) != len(objects):
        stuck = sorted(str(k) for k, b in blockers.items() if b)
        raise DiffError("Cyclic dependency between " + ", ".join(stuck))
    return ordered


def _check_references(snapshot: SchemaSnapshot) -> None:
    for obj in snapshot.objects.values():
        for ref in obj.references():
            if ref not in snapshot:
                raise DanglingReferenceError(str(obj.key), ref.name).with_context(
                    file=obj.location.file if obj.location else None
                )


def order_creates(objects: Sequence[SchemaObject]) -> list[SchemaObject]:
    """Parents (and referenced objects) before the objects that need them."""
    return _toposort(objects, dependencies, _create_key)


def order_drops(objects: Sequence[SchemaObject]) -> list[SchemaObject]:
    """Children (and referring objects) before the objects they need."""
    needed_by: dict[ObjectKey, list[ObjectKey]] = {obj.key: [] for obj in objects}
    for obj in objects:
        for dep in dependencies(obj):
            if dep in needed_by:
                needed_by[dep].append(obj.key)
    return _toposort(objects, lambda obj: needed_by[obj.key], _drop_key)


def resolve_diff(old: SchemaSnapshot, new: SchemaSnapshot) -> list[Statement]:
    """
    Compute the ordered statements that turn ``old`` into ``new``.

    Raises:
        DanglingReferenceError: an object in ``new`` references a table or
            analyzer that is not part of ``new``.
        DiffError: the created or dropped objects depend on each other
            cyclically.
    """
    _check_references(new)

    created = [obj for key, obj in new.objects.items() if key not in old]
    dropped = [obj for key, obj in old.objects.items() if key not in new]
    altered = [
        (old[key], obj) for key, obj in new.objects.items() if key in old and old[key] != obj
    ]

    statements = [Statement.create(obj) for obj in order_creates(created)]
    statements += [Statement.alter(prev, cur) for prev, cur in sorted(altered, key=_alter_key)]
    statements += [Statement.drop(obj) for obj in order_drops(dropped)]

    logger.info(
        "diff.resolved",
        creates=len(created),
        alters=len(altered),
        drops=len(dropped),
    )
    return statements


def reverse_statements(statements: Sequence[Statement]) -> list[Statement]:
    """Statements that undo ``statements``, in undo order."""
    return [statement.reverse() for statement in reversed(statements)]
