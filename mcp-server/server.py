"""MCP server exposing one UCI engine session as tools.

A single adapter lives in module state: start the engine, start a
game, submit moves and poll the engine's events. Logging goes to
stderr because stdout carries the MCP protocol.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from uci_bridge.adapter import UciAdapter
from uci_bridge.config import AdapterConfig, configure_logging
from uci_bridge.errors import AdapterError
from uci_bridge.models import Mode

from response_schemas import minify_event, minify_session_state  # noqa: E402

logger = logging.getLogger(__name__)

mcp = FastMCP("uci-bridge")

# The one engine session: {"adapter": UciAdapter} once started
_session: dict = {}


def _get_adapter() -> UciAdapter | None:
    return _session.get("adapter")


@mcp.tool()
def start_engine(engine_path: str | None = None, ready_timeout: float | None = None) -> dict:
    """Spawn the engine and run the UCI handshake.

    Args:
        engine_path: Engine executable. Auto-detected when omitted.
        ready_timeout: Seconds to wait for readyok (default 3).

    Returns:
        Session state dict, or an error dict.
    """
    if _get_adapter() is not None:
        return {"error": "Engine already running. Call stop_engine first."}

    config = AdapterConfig.from_env()
    if engine_path:
        config.engine_path = engine_path
    if ready_timeout is not None:
        config.ready_timeout = ready_timeout

    adapter = UciAdapter(config)
    try:
        adapter.start()
    except (AdapterError, FileNotFoundError) as exc:
        return {"error": str(exc)}

    _session["adapter"] = adapter
    return minify_session_state(adapter.snapshot_dict())


@mcp.tool()
def start_game(mode: str = "engine_black", time_control_ms: int = 300_000) -> dict:
    """Start a new game.

    Args:
        mode: 'engine_white', 'engine_black' or 'analysis'.
        time_control_ms: Clock budget per side in milliseconds.

    Returns:
        Session state dict with an 'engine_ready' flag, or an error dict.
    """
    adapter = _get_adapter()
    if adapter is None:
        return {"error": "Engine not running. Call start_engine first."}
    try:
        mode_value = Mode(mode)
    except ValueError:
        return {"error": f"Unknown mode: {mode}. Use one of {[m.value for m in Mode]}"}

    try:
        ready = adapter.start_game(mode_value, time_control_ms=time_control_ms)
    except AdapterError as exc:
        return {"error": str(exc)}

    result = minify_session_state(adapter.snapshot_dict())
    result["engine_ready"] = ready
    return result


@mcp.tool()
def submit_move(move: str) -> dict:
    """Play the user's move in coordinate notation (e.g. 'e2e4', 'e7e8q').

    Args:
        move: Move in coordinate notation. Legality is not checked.

    Returns:
        Session state dict with an 'engine_ready' flag, or an error dict.
    """
    adapter = _get_adapter()
    if adapter is None:
        return {"error": "Engine not running. Call start_engine first."}
    try:
        ready = adapter.submit_user_move(move)
    except AdapterError as exc:
        return {"error": str(exc)}

    result = minify_session_state(adapter.snapshot_dict())
    result["engine_ready"] = ready
    return result


@mcp.tool()
def get_state() -> dict:
    """Get the current session state (moves, turn, latest analysis)."""
    adapter = _get_adapter()
    if adapter is None:
        return {"error": "Engine not running. Call start_engine first."}
    return minify_session_state(adapter.snapshot_dict())


@mcp.tool()
def poll_events(wait_seconds: float = 0.0, max_events: int = 50) -> dict:
    """Drain queued engine events.

    Args:
        wait_seconds: How long to wait for the first event.
        max_events: Most events to return. Older ones beyond this are
            dropped and counted in 'dropped'.

    Returns:
        Dict with 'events' (list of {type, ...}) and 'dropped' count.
    """
    adapter = _get_adapter()
    if adapter is None:
        return {"error": "Engine not running. Call start_engine first."}

    events = adapter.drain_events(timeout=wait_seconds or None)
    kept = events[-max_events:] if max_events > 0 else []
    return {
        "events": [minify_event(type(e).__name__, asdict(e)) for e in kept],
        "dropped": len(events) - len(kept),
    }


@mcp.tool()
def stop_engine() -> dict:
    """Quit the engine and forget the session."""
    adapter = _session.pop("adapter", None)
    if adapter is None:
        return {"error": "Engine not running."}
    adapter.shutdown()
    return {"message": "Engine stopped"}


def main() -> None:
    configure_logging(AdapterConfig.from_env().log_level)
    mcp.run()


if __name__ == "__main__":
    main()
