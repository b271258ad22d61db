"""Tests for DisjointSet"""

import pytest

from gltfrig.core.disjoint_set import DisjointSet


def test_singletons():
    """Every inserted item starts in its own set"""
    ds = DisjointSet([3, 1, 2])

    assert len(ds) == 3
    assert ds.get_representatives() == [1, 2, 3]
    for item in (1, 2, 3):
        assert ds.find(item) == item


def test_union_merges_sets():
    """Union merges two sets and find agrees for every member"""
    ds = DisjointSet(range(5))
    ds.create_union(0, 1)
    ds.create_union(3, 4)
    ds.create_union(1, 4)

    assert ds.find(0) == ds.find(4) == ds.find(3)
    assert ds.find(2) == 2
    assert len(ds.get_representatives()) == 2


def test_members_sorted():
    """Members come back sorted regardless of union order"""
    ds = DisjointSet([9, 4, 7, 1])
    ds.create_union(9, 1)
    ds.create_union(7, 9)

    rep = ds.find(7)
    assert ds.get_members(rep) == [1, 7, 9]


def test_representatives_ordered_by_smallest_member():
    """Representatives are ordered by the smallest member of their set"""
    ds = DisjointSet([10, 2, 5, 0])
    ds.create_union(10, 0)
    ds.create_union(5, 2)

    reps = ds.get_representatives()
    assert [min(ds.get_members(r)) for r in reps] == [0, 2]


def test_union_requires_insert():
    """Union with an unknown item raises KeyError"""
    ds = DisjointSet([1])
    with pytest.raises(KeyError):
        ds.create_union(1, 2)


def test_contains_and_insert_idempotent():
    """Inserting twice keeps a single entry"""
    ds = DisjointSet()
    ds.insert(4)
    ds.insert(4)

    assert 4 in ds
    assert 5 not in ds
    assert len(ds) == 1
