"""
Balance tree assembly -- pure aggregation over a flat parent-reference set.

Responsibility:
    Turns the flat list of a tenant's accounts (or categories) plus a map of
    leaf ("own") balances into a forest of BalanceNode values, where every
    node carries ``subtree_balance = own_balance + sum(child subtrees)``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  BalanceSelector
    does the querying and hands the rows and sums in.

Invariants enforced:
    - Arena + index: nodes are addressed by position in a list and the
      finished tree is immutable with no back-pointers.
    - Any node whose parent is null or not in the set is a root.
    - A parent cycle never loops: traversal is iterative with a visited
      set, and each cycle is broken at its smallest id, which becomes a
      root.  Broken ids are reported on the result.
    - Siblings are ordered by (sort_order, id).

Failure modes:
    - None.  Corrupt parent data degrades to extra roots, never to an
      exception or a lost node.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Sequence


@dataclass(frozen=True)
class TreeEntry:
    """Input row: the structural fields the assembler needs."""

    id: int
    name: str
    kind: str
    parent_id: int | None
    sort_order: int = 0


@dataclass(frozen=True)
class BalanceNode:
    """
    One node of an aggregated balance tree.

    ``parent_id`` is the resolved parent: None for every root, including
    orphans and nodes detached to break a cycle.
    """

    id: int
    name: str
    kind: str
    parent_id: int | None
    sort_order: int
    own_balance: int
    subtree_balance: int
    children: tuple[BalanceNode, ...] = ()

    def walk(self) -> Iterator[BalanceNode]:
        """Pre-order iteration over this node and its descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


@dataclass(frozen=True)
class BalanceTree:
    """
    The aggregated forest for one tenant and one entity kind.

    ``classifications`` fixes the order in which ``partition()`` reports
    kinds (asset/liability, or income/expense).
    """

    roots: tuple[BalanceNode, ...]
    classifications: tuple[str, ...] = ()
    broken_cycles: tuple[int, ...] = ()
    _index: dict[int, BalanceNode] = field(default_factory=dict, repr=False, compare=False)

    def roots_of(self, kind: str) -> tuple[BalanceNode, ...]:
        """Roots of one classification.  A pure filter over ``roots``."""
        return tuple(r for r in self.roots if r.kind == kind)

    def partition(self) -> dict[str, tuple[BalanceNode, ...]]:
        kinds = list(self.classifications)
        for root in self.roots:
            if root.kind not in kinds:
                kinds.append(root.kind)
        return {kind: self.roots_of(kind) for kind in kinds}

    def total(self, kind: str) -> int:
        return sum(r.subtree_balance for r in self.roots_of(kind))

    def find(self, node_id: int) -> BalanceNode | None:
        return self._index.get(node_id)

    def nodes(self) -> Iterator[BalanceNode]:
        for root in self.roots:
            yield from root.walk()


def build_balance_tree(
    entries: Iterable[TreeEntry],
    own_balances: Mapping[int, int],
    classifications: Sequence[str] = (),
) -> BalanceTree:
    """
    Build the aggregated forest.

    Args:
        entries: Every account (or category) of one tenant.
        own_balances: Leaf balance per id.  Missing ids count as 0.
        classifications: Preferred kind order for ``partition()``.

    Returns:
        BalanceTree whose roots are ordered by (sort_order, id).
    """
    arena: list[TreeEntry] = sorted(entries, key=lambda e: (e.sort_order, e.id))
    position = {entry.id: i for i, entry in enumerate(arena)}

    parent_of: list[int | None] = [
        position.get(entry.parent_id) if entry.parent_id is not None else None
        for entry in arena
    ]
    broken = _break_cycles(arena, parent_of)

    children: list[list[int]] = [[] for _ in arena]
    root_slots: list[int] = []
    for i, p in enumerate(parent_of):
        if p is None:
            root_slots.append(i)
        else:
            children[p].append(i)

    subtree = [0] * len(arena)
    built: list[BalanceNode | None] = [None] * len(arena)

    # Iterative post-order: children are finished before their parent
    for root in root_slots:
        stack: list[tuple[int, bool]] = [(root, False)]
        while stack:
            slot, expanded = stack.pop()
            if not expanded:
                stack.append((slot, True))
                for child in reversed(children[slot]):
                    stack.append((child, False))
                continue
            entry = arena[slot]
            own = int(own_balances.get(entry.id, 0))
            subtree[slot] = own + sum(subtree[c] for c in children[slot])
            built[slot] = BalanceNode(
                id=entry.id,
                name=entry.name,
                kind=entry.kind,
                parent_id=entry.parent_id if parent_of[slot] is not None else None,
                sort_order=entry.sort_order,
                own_balance=own,
                subtree_balance=subtree[slot],
                children=tuple(built[c] for c in children[slot]),
            )

    roots = tuple(built[r] for r in root_slots)
    index = {node.id: node for node in built if node is not None}
    return BalanceTree(
        roots=roots,
        classifications=tuple(classifications),
        broken_cycles=tuple(sorted(broken)),
        _index=index,
    )


def _break_cycles(arena: list[TreeEntry], parent_of: list[int | None]) -> list[int]:
    """
    Detach one node per parent cycle, in place.

    Walks each parent chain once (three-colour marking).  When a chain
    re-enters the path being walked, the member with the smallest id loses
    its parent.  Returns the ids that were detached.
    """
    UNSEEN, ON_PATH, DONE = 0, 1, 2
    state = [UNSEEN] * len(arena)
    broken: list[int] = []

    for start in range(len(arena)):
        if state[start] != UNSEEN:
            continue
        path: list[int] = []
        slot: int | None = start
        while slot is not None and state[slot] == UNSEEN:
            state[slot] = ON_PATH
            path.append(slot)
            slot = parent_of[slot]
        if slot is not None and state[slot] == ON_PATH:
            cycle = path[path.index(slot):]
            victim = min(cycle, key=lambda s: arena[s].id)
            parent_of[victim] = None
            broken.append(arena[victim].id)
        for s in path:
            state[s] = DONE

    return broken
