"""
Viewer gateway.

Responsibilities:
- Route inbound JSON control messages -> lifecycle manager calls
- Map scene-phase transitions onto start/stop
- Serialise status snapshots into outbound STATUS messages

NOT responsible for:
- Any lifecycle state machine logic (reducer)
- Retries, timers, transport calls (manager)
- Socket handling (server.routes)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from lifecycle.manager import ConnectionLifecycleManager
from lifecycle.status import StatusSnapshot

from observability.logger import log_event, now_ms

from session.scene_phase import ScenePhase


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def status_message(snapshot: StatusSnapshot) -> dict[str, Any]:
    """Outbound STATUS message for one snapshot."""
    return {"type": "STATUS", **snapshot.to_dict()}


def parse_scene_phase(raw: Any) -> ScenePhase | None:
    """Return the ScenePhase for a wire value, or None if unknown."""
    if not isinstance(raw, str):
        return None
    try:
        return ScenePhase(raw.strip().lower())
    except ValueError:
        return None


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# ViewerGateway
# ------------------------------------------------------------------

class ViewerGateway:
    """
    Presentation-layer adapter over one ConnectionLifecycleManager.

    One gateway is shared by every WebSocket viewer and the HTTP routes;
    the manager's own guards make repeated starts and stops safe. The
    stream is stopped when the last connected viewer goes away.
    """

    def __init__(self, manager: ConnectionLifecycleManager) -> None:
        self._manager = manager
        self._viewers = 0

    @property
    def manager(self) -> ConnectionLifecycleManager:
        return self._manager

    @property
    def viewer_count(self) -> int:
        return self._viewers

    def current_status(self) -> dict[str, Any]:
        return status_message(self._manager.status.snapshot)

    # ------------------------------------------------------------------
    # User actions / view lifecycle
    # ------------------------------------------------------------------

    def request_start(self) -> None:
        """Start button. Returns immediately; the sequence runs as a task."""
        self._manager.request_start()

    def request_stop(self) -> None:
        self._manager.stop()

    def on_scene_phase(self, phase: ScenePhase) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "SCENE_PHASE_CHANGED",
            "phase": phase.value,
        })

        if phase is ScenePhase.ACTIVE:
            self.request_start()
        elif phase is ScenePhase.BACKGROUND:
            self.request_stop()

    def on_view_appear(self) -> None:
        self._viewers += 1
        log_event({
            "ts_ms": now_ms(),
            "event_type": "VIEW_APPEARED",
            "viewers": self._viewers,
        })

    def on_view_disappear(self) -> None:
        """A viewer went away (socket closed, view dismissed)."""
        self._viewers = max(0, self._viewers - 1)
        log_event({
            "ts_ms": now_ms(),
            "event_type": "VIEW_DISAPPEARED",
            "viewers": self._viewers,
        })
        if self._viewers == 0:
            self.request_stop()

    # ------------------------------------------------------------------
    # Inbound JSON
    # ------------------------------------------------------------------

    def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON to manager calls; reply with current status."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        if not isinstance(data, dict):
            log_event({
                "ts_ms": now_ms(),
                "event_type": "INVALID_MESSAGE_SHAPE",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        msg_type = data.get("type")

        if msg_type == "START":
            self.request_start()
        elif msg_type == "STOP":
            self.request_stop()
        elif msg_type == "SCENE_PHASE":
            phase = parse_scene_phase(data.get("phase"))
            if phase is None:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "UNKNOWN_SCENE_PHASE",
                    "phase": data.get("phase"),
                })
                return GatewayResult()
            self.on_scene_phase(phase)
        else:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": msg_type,
            })
            return GatewayResult()

        return GatewayResult(outbound_json=(self.current_status(),))
