"""Device registry: immutable addressing table plus per-device pending state.

The registry is the only state shared by the inbound and outbound
processors. Every operation is a keyed dict lookup; unknown addresses are
"not found", never an error.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .addon_config import ConfigError, DeviceSpec
from .core_types import DeviceAddress, Value
from .ports import TimerHandle

SET_SUFFIX = "/set"
STATE_SUFFIX = "/state"


@dataclass
class PendingCommand:
    """Outbound command whose effect has not been observed yet."""

    expected: Value
    retry_count: int = 0
    refresh: TimerHandle | None = field(default=None, repr=False, compare=False)

    def cancel_refresh(self) -> None:
        if self.refresh is not None:
            self.refresh.cancel()
            self.refresh = None


@dataclass
class DeviceRecord:
    address: DeviceAddress
    name: str
    topic: str
    pending: PendingCommand | None = None

    @property
    def set_topic(self) -> str:
        return self.topic + SET_SUFFIX

    @property
    def state_topic(self) -> str:
        return self.topic + STATE_SUFFIX


class DeviceRegistry:
    """Address -> DeviceRecord mapping with a secondary set-topic index."""

    def __init__(self, specs: Iterable[DeviceSpec]) -> None:
        self._by_address: dict[DeviceAddress, DeviceRecord] = {}
        self._by_set_topic: dict[str, DeviceRecord] = {}
        for spec in specs:
            record = DeviceRecord(address=spec.address, name=spec.name, topic=spec.topic)
            if record.address in self._by_address:
                raise ConfigError(f"duplicate address {list(record.address)}")
            if record.set_topic in self._by_set_topic:
                raise ConfigError(f"duplicate topic '{record.topic}'")
            self._by_address[record.address] = record
            self._by_set_topic[record.set_topic] = record

    def __len__(self) -> int:
        return len(self._by_address)

    def __iter__(self) -> Iterator[DeviceRecord]:
        return iter(self._by_address.values())

    def lookup(self, address: DeviceAddress) -> DeviceRecord | None:
        return self._by_address.get(address)

    def lookup_by_topic(self, set_topic: str) -> DeviceRecord | None:
        return self._by_set_topic.get(set_topic)

    def arm(self, address: DeviceAddress, expected: Value) -> PendingCommand | None:
        """Start tracking confirmation of a command, superseding any earlier one."""
        record = self._by_address.get(address)
        if record is None:
            return None
        if record.pending is not None:
            record.pending.cancel_refresh()
        record.pending = PendingCommand(expected=expected)
        return record.pending

    def clear_pending(self, address: DeviceAddress) -> None:
        record = self._by_address.get(address)
        if record is None or record.pending is None:
            return
        record.pending.cancel_refresh()
        record.pending = None

    def record_stale_hit(self, address: DeviceAddress) -> int:
        """Count one stale reading against the pending command; return the count."""
        record = self._by_address.get(address)
        if record is None or record.pending is None:
            return 0
        record.pending.retry_count += 1
        return record.pending.retry_count

    def cancel_all_refreshes(self) -> None:
        for record in self._by_address.values():
            if record.pending is not None:
                record.pending.cancel_refresh()
