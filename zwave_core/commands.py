"""Outbound command processor: broker ``/set`` requests to mesh commands."""

from __future__ import annotations

from .core_types import Value
from .logging_setup import bridge_logger as logger
from .logging_setup import log_command_received
from .ports import MeshTransport
from .registry import SET_SUFFIX, DeviceRegistry


class OutboundCommandProcessor:
    """Issues mesh commands and arms confirmation tracking.

    Never publishes state itself; that only happens once the mesh reports
    back through the inbound reconciler.
    """

    def __init__(self, registry: DeviceRegistry, mesh: MeshTransport) -> None:
        self.registry = registry
        self.mesh = mesh

    def handle(self, topic: str, payload: str) -> bool:
        """Process one broker message; return True when a command was issued."""
        if not topic.endswith(SET_SUFFIX):
            return False
        record = self.registry.lookup_by_topic(topic)
        if record is None:
            logger.debug({"event": "set_topic_unknown", "topic": topic})
            return False

        value = Value.from_payload(payload)
        log_command_received(topic, payload, record.address)
        self.mesh.set_value(record.address, value.command_value)
        self.registry.arm(record.address, value)
        return True
