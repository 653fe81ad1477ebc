"""
Shared pytest fixtures and configuration for TreeState tests.
"""

import pytest

from treestate import EventBus, StateManager


@pytest.fixture
def bus():
    """Provide a fresh in-process EventBus."""
    return EventBus()


@pytest.fixture
def manager(bus):
    """Provide a StateManager wired to the ``bus`` fixture."""
    state = StateManager(bus)
    yield state
    state.close()


@pytest.fixture
def manager_without_bus():
    """Provide a StateManager with no event transport."""
    return StateManager()


@pytest.fixture
def recorded_events(bus):
    """Collect every state:changed / state:batch payload published on ``bus``."""
    events = []
    bus.subscribe("state:changed", lambda payload: events.append(("state:changed", payload)))
    bus.subscribe("state:batch", lambda payload: events.append(("state:batch", payload)))
    return events
