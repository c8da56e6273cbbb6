"""
bridge_controller.py

Orchestrates MQTT and Z-Wave setup for the bridge:
- Builds the device registry from validated settings
- Starts the MQTT dispatcher and waits for the umbrella subscription
- Connects the Z-Wave link only after that, so no /set can race ahead
- Drains one event queue through the inbound/outbound processors
- Shuts down on the first signal, force-exits on the second
"""

from __future__ import annotations

import asyncio
import os
import signal
from collections.abc import Callable
from typing import Any

from .addon_config import BridgeSettings
from .commands import OutboundCommandProcessor
from .core_types import BrokerMessage, MeshValueEvent
from .logging_setup import _flush_all_log_handlers, logger
from .reconciler import InboundReconciler
from .registry import DeviceRegistry


def _force_exit() -> None:
    _flush_all_log_handlers()
    os._exit(0)


class BridgeCoordinator:
    """Wires both processors to one registry and owns start/stop ordering.

    ``mqtt_factory(settings, on_message)`` and ``mesh_factory(ws_url,
    on_event, on_lost)`` build the transports; tests inject fakes through them.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        mqtt_factory: Callable[..., Any] | None = None,
        mesh_factory: Callable[..., Any] | None = None,
        force_exit: Callable[[], None] = _force_exit,
    ) -> None:
        self.settings = settings
        self.registry = DeviceRegistry(settings.devices)
        self._mqtt_factory = mqtt_factory or _default_mqtt_factory
        self._mesh_factory = mesh_factory or _default_mesh_factory
        self._force_exit = force_exit
        self._queue: asyncio.Queue[BrokerMessage | MeshValueEvent] = asyncio.Queue()
        self._stop = asyncio.Event()
        self.stopping = False
        self.failure: Exception | None = None
        self.mqtt: Any = None
        self.mesh: Any = None
        self.inbound: InboundReconciler | None = None
        self.outbound: OutboundCommandProcessor | None = None

    # ---- Queue producers ----

    def enqueue(self, item: BrokerMessage | MeshValueEvent) -> None:
        self._queue.put_nowait(item)

    # ---- Dispatch ----

    def dispatch(self, item: BrokerMessage | MeshValueEvent) -> None:
        """Route one queue item; malformed input is logged and dropped."""
        try:
            if isinstance(item, MeshValueEvent):
                self.inbound.handle(item)
            elif isinstance(item, BrokerMessage):
                try:
                    payload = item.payload.decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning(
                        {"event": "payload_undecodable", "topic": item.topic}
                    )
                    return
                self.outbound.handle(item.topic, payload)
            else:
                logger.warning({"event": "dispatch_unknown_item", "item": repr(item)})
        except Exception:  # noqa: BLE001 - the dispatch loop must survive bad input
            logger.exception({"event": "dispatch_error", "item": repr(item)})

    async def _dispatch_loop(self) -> None:
        while True:
            item = await self._queue.get()
            self.dispatch(item)
            self._queue.task_done()

    # ---- Lifecycle ----

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        s = self.settings
        logger.info(
            {
                "event": "bridge_controller_start",
                "devices": len(self.registry),
                "subscribe_topic": s.subscribe_topic,
                "retry_limit": s.retry_limit,
                "refresh_delay": s.refresh_delay,
            }
        )
        self.mqtt = self._mqtt_factory(s, self.enqueue)
        self.mesh = self._mesh_factory(s.zwave_ws_url, self.enqueue, self.on_mesh_lost)
        self.inbound = InboundReconciler(
            self.registry,
            self.mqtt,
            self.mesh,
            loop,
            retry_limit=s.retry_limit,
            refresh_delay=s.refresh_delay,
            qos=s.mqtt_qos,
        )
        self.outbound = OutboundCommandProcessor(self.registry, self.mesh)

        self.mqtt.start(loop)
        await self.mqtt.wait_subscribed()
        await self.mesh.connect()
        logger.info({"event": "bridge_controller_ready"})

    def request_stop(self) -> None:
        """Signal handler: first call stops gracefully, a second one force-exits."""
        if self.stopping:
            logger.warning({"event": "forced_exit"})
            self._force_exit()
            return
        logger.info({"event": "stopping"})
        self.stopping = True
        self._stop.set()

    def on_mesh_lost(self) -> None:
        """The mesh link died after startup; stop and report failure."""
        if self.stopping:
            return
        self.failure = ConnectionError("Z-Wave JS connection lost")
        self.request_stop()

    async def shutdown(self) -> None:
        self.registry.cancel_all_refreshes()
        if self.mqtt is not None:
            self.mqtt.stop()
        if self.mesh is not None:
            try:
                await self.mesh.disconnect()
            except Exception as exc:  # noqa: BLE001 - shutdown proceeds on the timer
                logger.warning({"event": "mesh_disconnect_error", "error": repr(exc)})
        await asyncio.sleep(self.settings.shutdown_grace)
        logger.info({"event": "exiting"})

    async def run(self) -> None:
        """Start, dispatch until a stop is requested, then shut down."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request_stop))

        dispatcher = asyncio.create_task(self._dispatch_loop())
        starter = asyncio.create_task(self.start())
        stop_waiter = asyncio.create_task(self._stop.wait())
        try:
            done, _ = await asyncio.wait(
                {starter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if starter in done:
                starter.result()
                await stop_waiter
        finally:
            for task in (starter, stop_waiter, dispatcher):
                task.cancel()
            await asyncio.gather(starter, stop_waiter, dispatcher, return_exceptions=True)
            await self.shutdown()
        if self.failure is not None:
            raise self.failure


def _default_mqtt_factory(settings: BridgeSettings, on_message):
    from .mqtt_dispatcher import MqttDispatcher

    return MqttDispatcher(settings, on_message)


def _default_mesh_factory(ws_url: str, on_event, on_lost):
    from .zwave_link import ZWaveLink

    return ZWaveLink(ws_url, on_event, on_lost)


def start_bridge_controller(settings: BridgeSettings) -> None:
    """Canonical entry point: run the bridge until stopped."""
    asyncio.run(BridgeCoordinator(settings).run())


__all__ = ["BridgeCoordinator", "start_bridge_controller"]
