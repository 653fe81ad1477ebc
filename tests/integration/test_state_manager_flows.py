"""Integration tests for end-to-end state manager flows."""

import asyncio
from unittest.mock import Mock

import pytest

from treestate import BatchChange, StateManager, default_state


@pytest.mark.integration
@pytest.mark.store
def test_console_example_notifies_with_new_old_and_path(manager):
    """Subscribing after an initial write reports the next change"""
    # Arrange
    manager.set_state("user.name", "Test User")
    callback = Mock()
    manager.subscribe("user.name", callback)

    # Act
    assert manager.get_state("user.name") == "Test User"
    manager.set_state("user.name", "New Name")

    # Assert
    callback.assert_called_once_with("New Name", "Test User", "user.name")


@pytest.mark.integration
@pytest.mark.checkpoint
@pytest.mark.batch
@pytest.mark.diff
def test_checkpoint_batch_diff_rollback(manager, recorded_events):
    """A batch after a checkpoint is diffable and fully undone by rollback"""
    # Arrange
    checkpoint_id = manager.create_checkpoint("clean")

    # Act - one batch with two writes
    with manager.batch():
        manager.set_state("characters.alice", {"name": "Alice"})
        manager.set_state("active_character", "alice")
    diff = manager.get_diff("clean")

    # Assert - diff against the checkpoint
    assert diff.added == {"characters.alice": {"name": "Alice"}}
    assert diff.modified == {"active_character": {"old": None, "new": "alice"}}
    assert diff.removed == {}
    assert manager.get_diff(checkpoint_id) == diff

    # Assert - one event, one history entry
    assert [name for name, _ in recorded_events] == ["state:batch"]
    assert [u["path"] for u in recorded_events[0][1]["updates"]] == [
        "characters.alice",
        "active_character",
    ]
    history = manager.get_history()
    assert len(history) == 1
    assert isinstance(history[0], BatchChange)

    # Act - rollback
    assert manager.rollback("clean") is True

    # Assert - tree restored, checkpoint consumed, nothing announced
    assert manager.get_full_state() == default_state()
    assert manager.rollback_stack == ()
    assert len(recorded_events) == 1
    assert len(manager.get_history()) == 1


@pytest.mark.integration
@pytest.mark.batch
@pytest.mark.checkpoint
def test_atomic_batch_failure_leaves_checkpoints_and_tree_intact(manager, recorded_events):
    manager.set_state("ui.theme", "dark")
    manager.create_checkpoint("before-import")
    recorded_events.clear()

    with pytest.raises(KeyError):
        with manager.batch(atomic=True):
            manager.set_state("characters.bob", {"name": "Bob"})
            raise KeyError("missing field")

    assert manager.get_state("characters.bob") is None
    assert manager.get_state("ui.theme") == "dark"
    assert len(manager.rollback_stack) == 1
    assert recorded_events == []
    assert manager.get_diff("before-import").is_empty


@pytest.mark.integration
@pytest.mark.batch
def test_async_batch_delivers_writes_immediately_and_one_event(manager, recorded_events):
    """Subscribers see each write as it happens; the bus sees one batch"""
    seen = []
    manager.subscribe("ui.loading", lambda new, old, path: seen.append(new))

    async def load():
        manager.set_state("ui.loading", True)
        await asyncio.sleep(0)
        manager.set_state("runtime.initialized", True)
        manager.set_state("ui.loading", False)
        return "loaded"

    result = asyncio.run(manager.batch_update_async(load))

    assert result == "loaded"
    assert seen == [True, False]
    assert [name for name, _ in recorded_events] == ["state:batch"]
    assert len(recorded_events[0][1]["updates"]) == 3
    assert manager.batch_mode is False


@pytest.mark.integration
@pytest.mark.subscription
def test_subscriber_can_write_other_paths(manager, recorded_events):
    """A callback may write to the tree while being notified"""
    manager.subscribe(
        "active_character",
        lambda new, old, path: manager.set_state("ui.loading", new is not None),
    )

    manager.set_state("active_character", "alice")

    assert manager.get_state("ui.loading") is True
    assert {payload["path"] for _, payload in recorded_events} == {
        "active_character",
        "ui.loading",
    }
    assert len(manager.get_history()) == 2


@pytest.mark.integration
@pytest.mark.diff
def test_diff_cache_is_invalidated_by_writes(manager):
    manager.create_checkpoint("base")

    manager.get_diff("base")
    manager.get_diff("base")
    assert manager.get_stats()["diff_cache_size"] == 1

    manager.set_state("ui.theme", "dark")
    assert manager.get_stats()["diff_cache_size"] == 0
    assert manager.get_diff("base").modified == {
        "ui.theme": {"old": "default", "new": "dark"}
    }


@pytest.mark.integration
@pytest.mark.store
def test_full_state_round_trips_into_a_new_manager(manager):
    """get_full_state output can seed or reset another manager"""
    # Arrange
    manager.set_state("characters.alice", {"name": "Alice", "tags": ["hero"]})
    manager.set_state("config.model", "local")
    snapshot = manager.get_full_state()

    # Act
    seeded = StateManager(initial_state=snapshot)
    restored = StateManager()
    restored.reset(snapshot)

    # Assert
    assert seeded.get_full_state() == manager.get_full_state()
    assert restored.get_full_state() == manager.get_full_state()
    assert seeded.get_diff_between(snapshot, restored.get_full_state()).is_empty


@pytest.mark.integration
@pytest.mark.checkpoint
def test_rollback_by_depth_discards_newer_checkpoints(manager):
    manager.create_checkpoint("one")
    manager.set_state("ui.theme", "dark")
    manager.create_checkpoint("two")
    manager.set_state("ui.theme", "light")
    manager.create_checkpoint("three")

    assert manager.rollback(2) is True

    assert manager.get_state("ui.theme") == "dark"
    assert [checkpoint.label for checkpoint in manager.rollback_stack] == ["one"]
    assert manager.rollback("three") is False
