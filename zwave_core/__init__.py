"""zwave_core: Z-Wave value <-> MQTT topic bridge."""

from __future__ import annotations

from .bridge_controller import BridgeCoordinator, start_bridge_controller
from .registry import DeviceRecord, DeviceRegistry, PendingCommand

__all__ = [
    "BridgeCoordinator",
    "DeviceRecord",
    "DeviceRegistry",
    "PendingCommand",
    "start_bridge_controller",
]
