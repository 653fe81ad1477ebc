"""Default shape of the application state tree."""

from typing import Any, Dict


def default_state() -> Dict[str, Any]:
    """Return a fresh copy of the default tree used by construction and reset()."""
    return {
        "characters": {},
        "active_character": None,
        "chat_sessions": {},
        "active_chat": None,
        "messages": {},
        "config": {},
        "ui": {
            "theme": "default",
            "sidebar_open": True,
            "loading": False,
        },
        "runtime": {
            "initialized": False,
            "version": "1.0.0",
            "last_update": None,
        },
    }
