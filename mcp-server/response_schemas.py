"""Response schemas and minification for MCP tool responses.

Minifies session snapshots to what an agent needs to follow the game.
The move list becomes a numbered string (1.e2e4 e7e5 2.g1f3 ...).
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session_state(state: dict) -> dict:
    """Minify a SessionSnapshot dict for MCP response.

    Drops handshake internals and the option registry, compacts the
    move list and truncates the principal variation.

    Args:
        state: Full snapshot dict (from dataclasses.asdict).

    Returns:
        Minified dict.
    """
    result = {}

    for key in (
        "engine_name", "mode", "ply", "to_play", "pondering", "analysing",
        "alive", "degraded", "score", "nodes_per_second", "depth",
    ):
        if key in state:
            result[key] = state[key]

    moves = state.get("moves", [])
    if isinstance(moves, list):
        result["moves"] = _moves_to_numbered_string(moves)
    else:
        result["moves"] = moves

    best_line = state.get("best_line", [])
    if isinstance(best_line, list):
        result["best_line"] = best_line[:5]
    else:
        result["best_line"] = best_line

    # Only include lost_reason when the engine is gone
    if state.get("lost_reason") is not None:
        result["lost_reason"] = state["lost_reason"]

    # Removed fields: engine_author, protocol_ready, ready_for_command,
    # ponder_move, options

    return result


def minify_event(event_type: str, payload: dict) -> dict:
    """Flatten an event dataclass dict and tag it with its type."""
    result = {"type": event_type}
    for key, value in payload.items():
        if value is None:
            continue
        result[key] = list(value) if isinstance(value, tuple) else value
    return result


# ---------------------------------------------------------------------------
# Helper: move list to numbered string
# ---------------------------------------------------------------------------


def _moves_to_numbered_string(moves: list[str]) -> str:
    """Convert coordinate moves to a numbered move string.

    E.g., ['e2e4', 'e7e5', 'g1f3'] -> '1.e2e4 e7e5 2.g1f3'
    """
    if not moves:
        return ""

    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}.{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_STATE_SCHEMA = {
    "engine_name": str,
    "mode": (str, type(None)),
    "ply": int,
    "to_play": int,
    "pondering": bool,
    "analysing": bool,
    "alive": bool,
    "degraded": bool,
    "score": (str, type(None)),
    "nodes_per_second": (str, type(None)),
    "depth": (int, type(None)),
    "moves": str,
    "best_line": list,
}

EVENTS_SCHEMA = {
    "events": list,
    "dropped": int,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when UCI_BRIDGE_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("UCI_BRIDGE_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
