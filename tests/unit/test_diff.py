"""Unit tests for the structural diff engine."""

import numpy as np
import pytest

from treestate import DiffResult, diff_between, values_equal


@pytest.mark.unit
@pytest.mark.diff
def test_diff_between_flattens_through_shared_mappings():
    """Modified leaves are reported under their full dotted path"""
    state1 = {"a": 1, "b": {"c": 2}}
    state2 = {"a": 2, "b": {"c": 3, "d": 4}, "e": 5}

    diff = diff_between(state1, state2)

    assert diff.to_dict() == {
        "added": {"b.d": 4, "e": 5},
        "modified": {"a": {"old": 1, "new": 2}, "b.c": {"old": 2, "new": 3}},
        "removed": {},
    }


@pytest.mark.unit
@pytest.mark.diff
def test_diff_reports_new_and_removed_subtrees_whole():
    """Added and removed subtrees are not flattened past the point of divergence"""
    state1 = {
        "characters": {
            "char1": {"name": "Alice", "tags": ["hero"]},
            "char2": {"name": "Bob", "tags": ["villain"]},
        }
    }
    state2 = {
        "characters": {
            "char1": {"name": "Alice", "tags": ["hero", "leader"]},
            "char3": {"name": "Charlie", "tags": ["neutral"]},
        }
    }

    diff = diff_between(state1, state2)

    assert diff.added == {"characters.char3": {"name": "Charlie", "tags": ["neutral"]}}
    assert diff.modified == {
        "characters.char1.tags": {"old": ["hero"], "new": ["hero", "leader"]}
    }
    assert diff.removed == {"characters.char2": {"name": "Bob", "tags": ["villain"]}}


@pytest.mark.unit
@pytest.mark.diff
def test_sequences_are_compared_atomically():
    """Lists are compared as whole values, not element by element"""
    diff = diff_between({"items": [1, 2, 3]}, {"items": [1, 2, 4]})

    assert diff.modified == {"items": {"old": [1, 2, 3], "new": [1, 2, 4]}}
    assert diff.added == {}
    assert diff.removed == {}


@pytest.mark.unit
@pytest.mark.diff
def test_type_mismatch_between_mapping_and_scalar_is_modified():
    """A mapping replaced by a scalar (or vice versa) is one modified entry"""
    diff = diff_between({"a": {"b": 1}, "c": 2}, {"a": 5, "c": {"d": 1}})

    assert diff.modified == {
        "a": {"old": {"b": 1}, "new": 5},
        "c": {"old": 2, "new": {"d": 1}},
    }


@pytest.mark.unit
@pytest.mark.diff
def test_identical_trees_produce_empty_diff():
    tree = {"a": {"b": [1, {"c": 2}]}}

    diff = diff_between(tree, {"a": {"b": [1, {"c": 2}]}})

    assert diff.is_empty
    assert diff == DiffResult()


@pytest.mark.unit
@pytest.mark.diff
def test_diff_does_not_alias_inputs():
    """Mutating a diff result never touches the compared trees"""
    source = {"a": {"list": [1]}}
    target = {"a": {"list": [1]}, "b": {"list": [2]}}

    diff = diff_between(source, target)
    diff.added["b"]["list"].append(99)

    assert target["b"]["list"] == [2]


@pytest.mark.unit
@pytest.mark.diff
def test_diff_handles_numpy_arrays():
    """Arrays are compared by content, and mismatched types are unequal"""
    same = diff_between({"x": np.array([1, 2])}, {"x": np.array([1, 2])})
    changed = diff_between({"x": np.array([1, 2])}, {"x": np.array([1, 3])})
    retyped = diff_between({"x": np.array([1, 2])}, {"x": [1, 2]})

    assert same.is_empty
    assert list(changed.modified) == ["x"]
    assert list(retyped.modified) == ["x"]


@pytest.mark.unit
@pytest.mark.diff
def test_diff_treats_none_as_empty_mapping():
    diff = diff_between(None, {"a": 1})

    assert diff.added == {"a": 1}


@pytest.mark.unit
@pytest.mark.diff
@pytest.mark.parametrize(
    "a, b, expected",
    [
        (1, 1, True),
        (1, 2, False),
        ({"a": [1, 2]}, {"a": [1, 2]}, True),
        ({"a": np.array([1])}, {"a": np.array([1])}, True),
        ([1, 2], (1, 2), False),
        ({"a": 1}, {"b": 1}, False),
    ],
)
def test_values_equal(a, b, expected):
    assert values_equal(a, b) is expected


@pytest.mark.unit
@pytest.mark.diff
def test_get_diff_against_checkpoint(manager):
    """get_diff compares a checkpoint with the live tree"""
    # Arrange
    manager.set_state("ui.theme", "dark")
    manager.create_checkpoint("before")
    manager.set_state("ui.theme", "light")
    manager.set_state("ui.sidebar_open", False)
    manager.set_state("new.property", "value")

    # Act
    diff = manager.get_diff(1)

    # Assert
    assert diff.to_dict() == {
        "added": {"new": {"property": "value"}},
        "modified": {
            "ui.theme": {"old": "dark", "new": "light"},
            "ui.sidebar_open": {"old": True, "new": False},
        },
        "removed": {},
    }
    assert manager.get_diff("before") == diff


@pytest.mark.unit
@pytest.mark.diff
@pytest.mark.parametrize("target", ["nonexistent", 999, -1, 0])
def test_get_diff_returns_none_for_unresolved_targets(manager, target):
    assert manager.get_diff(target) is None


@pytest.mark.unit
@pytest.mark.diff
def test_get_diff_results_are_cached_until_next_write(manager):
    """Repeated diffs hit the cache; a write invalidates it"""
    manager.create_checkpoint("start")
    manager.set_state("ui.theme", "dark")

    first = manager.get_diff("start")
    assert manager.get_stats()["diff_cache_size"] == 1

    first.modified.clear()
    assert manager.get_diff("start").modified == {"ui.theme": {"old": "default", "new": "dark"}}

    manager.set_state("ui.theme", "light")
    assert manager.get_stats()["diff_cache_size"] == 0
    assert manager.get_diff("start").modified["ui.theme"]["new"] == "light"


@pytest.mark.unit
@pytest.mark.diff
def test_get_diff_between_delegates_to_engine(manager):
    diff = manager.get_diff_between({"a": 1}, {"a": 1, "b": 2})

    assert diff.added == {"b": 2}
