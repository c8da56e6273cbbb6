"""Protocol definitions for the external ports used by the bridge.

These small Protocols document the minimal methods the runtime
infrastructure (MQTT, Z-Wave, event-loop timers) must provide. The
processors only ever see these surfaces, which keeps them testable with
plain fakes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from .core_types import DeviceAddress, Scalar


@runtime_checkable
class MqttClient(Protocol):
    """Minimal MQTT client API used by the inbound processor."""

    def publish(
        self,
        topic: str,
        payload: str,
        qos: int = ...,
        retain: bool = ...,
    ) -> Any:
        """Publish a string payload to a topic."""


@runtime_checkable
class MeshTransport(Protocol):
    """Command sink of the mesh network.

    Both calls are fire-and-forget: implementations schedule the actual
    I/O and return immediately.
    """

    def set_value(self, address: DeviceAddress, value: Scalar) -> None:
        """Request the mesh value at ``address`` to take ``value``."""

    def refresh_value(self, address: DeviceAddress) -> None:
        """Ask the node to report the current value at ``address``."""


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Cancel the scheduled callback."""


@runtime_checkable
class Scheduler(Protocol):
    """Deferred-callback source; ``asyncio.AbstractEventLoop`` satisfies it."""

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` after ``delay`` seconds."""


__all__ = ["MeshTransport", "MqttClient", "Scheduler", "TimerHandle"]
