"""
Tests for the pure balance tree assembler (ledger_kernel/domain/balance_tree.py).

Verifies:
- subtree_balance = own_balance + sum(child subtree balances) at every node
- Roots and siblings ordered by (sort_order, id)
- Orphans (parent missing from the set) become roots
- Parent cycles are broken at the smallest id and never loop
- partition() and total() are pure filters over the roots
"""

from ledger_kernel.domain.balance_tree import BalanceTree, TreeEntry, build_balance_tree


def _entry(id, parent_id=None, kind="asset", sort_order=0, name=None):
    return TreeEntry(
        id=id,
        name=name or f"n{id}",
        kind=kind,
        parent_id=parent_id,
        sort_order=sort_order,
    )


class TestAggregation:
    def test_empty_input(self):
        tree = build_balance_tree([], {})
        assert tree.roots == ()
        assert list(tree.nodes()) == []
        assert tree.broken_cycles == ()

    def test_single_leaf(self):
        tree = build_balance_tree([_entry(1)], {1: 500})
        (root,) = tree.roots
        assert root.own_balance == 500
        assert root.subtree_balance == 500
        assert root.children == ()

    def test_missing_balance_counts_as_zero(self):
        tree = build_balance_tree([_entry(1)], {})
        assert tree.roots[0].subtree_balance == 0

    def test_three_level_rollup(self):
        entries = [_entry(1), _entry(2, parent_id=1), _entry(3, parent_id=2), _entry(4, parent_id=1)]
        tree = build_balance_tree(entries, {1: 10, 2: 20, 3: 30, 4: -5})

        root = tree.find(1)
        assert root.own_balance == 10
        assert root.subtree_balance == 55
        assert tree.find(2).subtree_balance == 50
        assert tree.find(3).subtree_balance == 30
        assert tree.find(4).subtree_balance == -5

    def test_every_node_satisfies_rollup(self):
        entries = [_entry(i, parent_id=(i // 2 or None)) for i in range(1, 16)]
        own = {i: i * 100 for i in range(1, 16)}
        tree = build_balance_tree(entries, own)

        for node in tree.nodes():
            assert node.subtree_balance == node.own_balance + sum(
                c.subtree_balance for c in node.children
            )
        assert tree.roots[0].subtree_balance == sum(own.values())


class TestOrdering:
    def test_roots_ordered_by_sort_order_then_id(self):
        entries = [_entry(5, sort_order=1), _entry(3, sort_order=1), _entry(9, sort_order=0)]
        tree = build_balance_tree(entries, {})
        assert [r.id for r in tree.roots] == [9, 3, 5]

    def test_children_ordered_by_sort_order_then_id(self):
        entries = [
            _entry(1),
            _entry(4, parent_id=1, sort_order=2),
            _entry(2, parent_id=1, sort_order=2),
            _entry(3, parent_id=1, sort_order=0),
        ]
        tree = build_balance_tree(entries, {})
        assert [c.id for c in tree.find(1).children] == [3, 2, 4]

    def test_walk_is_preorder(self):
        entries = [_entry(1), _entry(2, parent_id=1), _entry(3, parent_id=2), _entry(4, parent_id=1, sort_order=1)]
        tree = build_balance_tree(entries, {})
        assert [n.id for n in tree.roots[0].walk()] == [1, 2, 3, 4]

    def test_input_order_does_not_matter(self):
        entries = [_entry(1), _entry(2, parent_id=1), _entry(3, parent_id=1)]
        own = {1: 1, 2: 2, 3: 3}
        forward = build_balance_tree(entries, own)
        backward = build_balance_tree(list(reversed(entries)), own)
        assert forward.roots == backward.roots


class TestCorruptParents:
    def test_orphan_becomes_root(self):
        tree = build_balance_tree([_entry(1), _entry(2, parent_id=999)], {2: 7})
        assert {r.id for r in tree.roots} == {1, 2}
        orphan = tree.find(2)
        assert orphan.parent_id is None
        assert orphan.subtree_balance == 7

    def test_two_node_cycle_broken_at_smallest_id(self):
        entries = [_entry(1, parent_id=2), _entry(2, parent_id=1)]
        tree = build_balance_tree(entries, {1: 10, 2: 20})

        assert tree.broken_cycles == (1,)
        (root,) = tree.roots
        assert root.id == 1
        assert [c.id for c in root.children] == [2]
        assert root.subtree_balance == 30

    def test_self_parent_is_a_cycle(self):
        tree = build_balance_tree([_entry(4, parent_id=4)], {4: 3})
        assert tree.broken_cycles == (4,)
        assert tree.roots[0].parent_id is None
        assert tree.roots[0].subtree_balance == 3

    def test_cycle_with_tail_keeps_every_node(self):
        # 5 -> 6 -> 7 -> 6 ; the tail node 5 hangs off the cycle
        entries = [_entry(5, parent_id=6), _entry(6, parent_id=7), _entry(7, parent_id=6)]
        tree = build_balance_tree(entries, {5: 1, 6: 2, 7: 4})

        assert tree.broken_cycles == (6,)
        assert sorted(n.id for n in tree.nodes()) == [5, 6, 7]
        assert tree.find(6).subtree_balance == 7

    def test_large_chain_does_not_recurse(self):
        depth = 5000
        entries = [_entry(1)] + [_entry(i, parent_id=i - 1) for i in range(2, depth + 1)]
        tree = build_balance_tree(entries, {depth: 1})
        assert tree.roots[0].subtree_balance == 1
        assert len(list(tree.nodes())) == depth


class TestPartition:
    def _tree(self) -> BalanceTree:
        entries = [
            _entry(1, kind="asset"),
            _entry(2, kind="liability"),
            _entry(3, kind="asset", parent_id=1),
            _entry(4, kind="asset", sort_order=1),
        ]
        return build_balance_tree(entries, {1: 100, 2: -40, 3: 5, 4: 20}, ("asset", "liability"))

    def test_roots_of_filters_by_kind(self):
        tree = self._tree()
        assert [r.id for r in tree.roots_of("asset")] == [1, 4]
        assert [r.id for r in tree.roots_of("liability")] == [2]

    def test_partition_follows_classification_order(self):
        parts = self._tree().partition()
        assert list(parts) == ["asset", "liability"]
        assert sum(len(v) for v in parts.values()) == 3

    def test_total_sums_root_subtrees(self):
        tree = self._tree()
        assert tree.total("asset") == 125
        assert tree.total("liability") == -40
        assert tree.total("income") == 0

    def test_unlisted_kind_still_partitioned(self):
        tree = build_balance_tree([_entry(1, kind="mystery")], {}, ("asset",))
        assert list(tree.partition()) == ["asset", "mystery"]
