import pytest

from tests.helpers.fakes import ManualScheduler
from zwave_core.addon_config import ConfigError, DeviceSpec, parse_devices
from zwave_core.core_types import DeviceAddress, Value
from zwave_core.registry import DeviceRegistry

ALAVALOT = DeviceAddress(2, 37, 3, 0)
UNKNOWN = DeviceAddress(9, 37, 1, 0)


@pytest.fixture
def registry(device_config):
    return DeviceRegistry(parse_devices(device_config))


def test_lookup_and_topics(registry):
    record = registry.lookup(ALAVALOT)
    assert record.name == "alavalot"
    assert record.set_topic == "nest/zwave/sauna/alavalot/set"
    assert record.state_topic == "nest/zwave/sauna/alavalot/state"
    assert registry.lookup_by_topic("nest/zwave/sauna/alavalot/set") is record
    assert registry.lookup_by_topic("nest/zwave/sauna/alavalot") is None
    assert len(registry) == 2


def test_unknown_address_is_not_found(registry):
    assert registry.lookup(UNKNOWN) is None
    assert registry.arm(UNKNOWN, Value.from_payload("ON")) is None
    registry.clear_pending(UNKNOWN)
    assert registry.record_stale_hit(UNKNOWN) == 0
    assert all(r.pending is None for r in registry)


def test_arm_overwrites_and_cancels_refresh(registry):
    scheduler = ManualScheduler()
    first = registry.arm(ALAVALOT, Value.from_payload("ON"))
    registry.record_stale_hit(ALAVALOT)
    first.refresh = scheduler.call_later(0.4, lambda: None)

    second = registry.arm(ALAVALOT, Value.from_payload("OFF"))
    assert registry.lookup(ALAVALOT).pending is second
    assert second.retry_count == 0
    assert second.expected.command_value == 0
    assert scheduler.handles[0].cancelled


def test_stale_hits_count_on_pending(registry):
    registry.arm(ALAVALOT, Value.from_payload("ON"))
    assert registry.record_stale_hit(ALAVALOT) == 1
    assert registry.record_stale_hit(ALAVALOT) == 2
    registry.clear_pending(ALAVALOT)
    assert registry.lookup(ALAVALOT).pending is None
    assert registry.record_stale_hit(ALAVALOT) == 0


def test_duplicate_specs_rejected():
    spec = DeviceSpec(address=ALAVALOT, name="a", topic="x/a")
    with pytest.raises(ConfigError):
        DeviceRegistry([spec, DeviceSpec(address=ALAVALOT, name="b", topic="x/b")])
    with pytest.raises(ConfigError):
        DeviceRegistry([spec, DeviceSpec(address=UNKNOWN, name="b", topic="x/a")])
