"""
reconciler.py

Turns raw mesh value events into confirmed, retained broker state.

Some nodes report their pre-command value right after a set command, before
the new value settles. While a command is pending, readings that disagree
with the expected value are held back and the node is asked to refresh the
value after a short delay. After ``retry_limit`` such readings the next
event is accepted whatever it says, so publication is never stalled forever.
"""

from __future__ import annotations

from .core_types import MeshValueEvent, Value
from .logging_setup import bridge_logger as logger
from .logging_setup import log_stale_value, log_state_published
from .ports import MeshTransport, MqttClient, Scheduler
from .registry import DeviceRecord, DeviceRegistry

DEFAULT_RETRY_LIMIT = 6
DEFAULT_REFRESH_DELAY = 0.4

COMMAND_CLASS_SWITCH_BINARY = 37


class InboundReconciler:
    """Consumes mesh value events and publishes confirmed state."""

    def __init__(
        self,
        registry: DeviceRegistry,
        mqtt: MqttClient,
        mesh: MeshTransport,
        scheduler: Scheduler,
        *,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        refresh_delay: float = DEFAULT_REFRESH_DELAY,
        qos: int = 1,
    ) -> None:
        self.registry = registry
        self.mqtt = mqtt
        self.mesh = mesh
        self.scheduler = scheduler
        self.retry_limit = retry_limit
        self.refresh_delay = refresh_delay
        self.qos = qos

    def handle(self, event: MeshValueEvent) -> bool:
        """Process one event; return True when state was published."""
        if event.command_class == COMMAND_CLASS_SWITCH_BINARY:
            logger.debug(
                {
                    "event": "mesh_value",
                    "kind": event.kind,
                    "node_id": event.node_id,
                    "command_class": event.command_class,
                    "value": repr(event.value),
                }
            )
        if event.value.value is None:
            # None means the node has not reported this value yet.
            logger.debug({"event": "mesh_value_unknown", "address": str(event.address)})
            return False
        record = self.registry.lookup(event.address)
        if record is None:
            return False

        observed = Value.from_mesh(event.value.type, event.value.value)
        pending = record.pending
        if pending is not None:
            confirmed = observed.matches(pending.expected)
            if not confirmed and pending.retry_count < self.retry_limit:
                self._hold_stale(record, observed)
                return False
            if not confirmed:
                logger.warning(
                    {
                        "event": "retry_limit_reached",
                        "device": record.name,
                        "address": str(record.address),
                        "observed": observed.raw,
                        "expected": pending.expected.raw,
                    }
                )
            self.registry.clear_pending(record.address)

        self._publish(record, observed)
        return True

    def _hold_stale(self, record: DeviceRecord, observed: Value) -> None:
        pending = record.pending
        retry_count = self.registry.record_stale_hit(record.address)
        log_stale_value(record.address, observed.raw, pending.expected.raw, retry_count)
        # One queued refresh per device; a newer stale hit replaces the timer.
        pending.cancel_refresh()
        pending.refresh = self.scheduler.call_later(
            self.refresh_delay, self._refresh, record
        )

    def _refresh(self, record: DeviceRecord) -> None:
        if record.pending is not None:
            record.pending.refresh = None
        logger.debug({"event": "refresh_value", "address": str(record.address)})
        self.mesh.refresh_value(record.address)

    def _publish(self, record: DeviceRecord, observed: Value) -> None:
        payload = observed.to_payload()
        self.mqtt.publish(record.state_topic, payload, qos=self.qos, retain=True)
        log_state_published(record.state_topic, payload, record.address)
