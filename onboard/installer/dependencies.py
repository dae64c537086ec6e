"""Dependency ordering and eligibility for installable items.

Each item names at most one ``depends_on`` target, so the relation is a forest
of short chains. A chain that ends at a missing id or loops back on itself
makes every item on it *unresolved*: such items are reported and never
attempted in a batch.
"""

from typing import Iterable

from ..config import Item
from .store import StateStore


def is_eligible(item: Item, store: StateStore) -> bool:
    """True iff the item has no dependency or its dependency is installed."""
    if not item.depends_on:
        return True
    state = store.get(item.depends_on)
    return state is not None and state.installed


def _walk_chain(item: Item, by_id: dict[str, Item]) -> tuple[list[str], str, str] | None:
    path = [item.id]
    current = item
    while current.depends_on:
        target = current.depends_on
        if target not in by_id:
            return path, target, "missing"
        if target in path:
            return path + [target], target, "cycle"
        path.append(target)
        current = by_id[target]
    return None


def find_unresolved(items: Iterable[Item]) -> dict[str, str]:
    """Map each unresolvable item id to a human-readable reason."""
    items = list(items)
    by_id = {item.id: item for item in items}
    unresolved: dict[str, str] = {}

    for item in items:
        problem = _walk_chain(item, by_id)
        if problem is None:
            continue
        path, target, kind = problem
        if kind == "missing" and len(path) == 1:
            unresolved[item.id] = f"dependency '{target}' does not exist"
        elif kind == "cycle" and target == item.id:
            unresolved[item.id] = f"dependency cycle: {' -> '.join(path)}"
        else:
            unresolved[item.id] = f"depends on unresolved item '{item.depends_on}'"

    return unresolved


def resolve_order(items: Iterable[Item]) -> list[Item]:
    """Return resolvable items so that every dependency precedes its dependents.

    Config order is preserved among items whose dependencies are already
    placed. Unresolved items are left out; see :func:`find_unresolved`.
    """
    items = list(items)
    unresolved = find_unresolved(items)
    pending = [item for item in items if item.id not in unresolved]

    ordered: list[Item] = []
    placed: set[str] = set()
    while pending:
        remaining = []
        for item in pending:
            if not item.depends_on or item.depends_on in placed:
                ordered.append(item)
                placed.add(item.id)
            else:
                remaining.append(item)
        if len(remaining) == len(pending):
            break
        pending = remaining

    return ordered


def plan_batch(items: Iterable[Item], store: StateStore) -> list[Item]:
    """Preview what a batch install would attempt, assuming every attempt succeeds.

    Repeatedly scans the resolvable items, taking any item that is not
    installed and whose dependency is installed, absent or already taken,
    until a scan makes no progress.
    """
    items = list(items)
    unresolved = find_unresolved(items)
    installed = {item_id for item_id, state in store.states.items() if state.installed}
    planned: list[Item] = []
    planned_ids: set[str] = set()

    progress = True
    while progress:
        progress = False
        for item in items:
            if item.id in planned_ids or item.id in installed or item.id in unresolved:
                continue
            dep = item.depends_on
            if dep and dep not in installed and dep not in planned_ids:
                continue
            planned.append(item)
            planned_ids.add(item.id)
            progress = True

    return planned


__all__ = [
    "is_eligible",
    "find_unresolved",
    "resolve_order",
    "plan_batch",
]
