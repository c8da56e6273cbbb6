"""Z-Wave JS link: mesh transport backed by a zwave-js-server websocket.

Maps the bridge's address 4-tuple onto Z-Wave JS value ids
(node, command class, endpoint, property) and turns node value events into
``MeshValueEvent`` items for the dispatch queue. Commands are scheduled as
tasks on the bridge loop and return immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import aiohttp
from zwave_js_server.client import Client as ZJSClient

from .core_types import DeviceAddress, MeshValue, MeshValueEvent, Scalar
from .logging_setup import zwave_logger as logger

VALUE_EVENTS = ("value added", "value updated")


def mesh_event_from_value(value: Any, kind: str) -> MeshValueEvent:
    """Build a queue item from a zwave_js_server ``Value`` model."""
    metadata = getattr(value, "metadata", None)
    return MeshValueEvent(
        node_id=value.node.node_id,
        command_class=value.command_class,
        value=MeshValue(
            instance=value.endpoint or 0,
            index=value.property_,
            type=getattr(metadata, "type", None),
            value=value.value,
        ),
        kind=kind,
    )


class ZWaveLink:
    """MeshTransport over Z-Wave JS."""

    def __init__(
        self,
        ws_url: str,
        on_event: Callable[[MeshValueEvent], None],
        on_lost: Callable[[], None] | None = None,
        client_factory: Callable[..., Any] = ZJSClient,
    ) -> None:
        self.ws_url = ws_url
        self._on_event = on_event
        self._on_lost = on_lost
        self._closing = False
        self._client_factory = client_factory
        self._session: aiohttp.ClientSession | None = None
        self._client: Any = None
        self._listen_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._watched: set[int] = set()

    # --------------- Lifecycle ---------------
    async def connect(self) -> None:
        """Connect, wait for driver ready, attach listeners, replay values."""
        self._session = aiohttp.ClientSession()
        self._client = self._client_factory(self.ws_url, self._session)
        logger.info({"event": "zwave_connect_attempt", "url": self.ws_url})
        await self._client.connect()
        logger.info({"event": "zwave_connected", "url": self.ws_url})
        driver_ready = asyncio.Event()
        self._listen_task = asyncio.create_task(self._client.listen(driver_ready))
        ready = asyncio.create_task(driver_ready.wait())
        await asyncio.wait(
            {ready, self._listen_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if not driver_ready.is_set():
            ready.cancel()
            listen_task, self._listen_task = self._listen_task, None
            exc = None if listen_task.cancelled() else listen_task.exception()
            logger.error({"event": "zwave_listen_failed", "error": repr(exc)})
            raise exc or ConnectionError("Z-Wave JS listener stopped before driver ready")
        self._listen_task.add_done_callback(self._on_listen_done)

        controller = self._client.driver.controller
        controller.on("node added", self._on_node_added)
        for node in list(controller.nodes.values()):
            self._watch_node(node)
        logger.info(
            {"event": "zwave_scan_complete", "nodes": len(controller.nodes)}
        )
        # Z-Wave JS does not re-announce known values; replay them so
        # current state is published at startup.
        for node in list(controller.nodes.values()):
            for value in list(node.values.values()):
                self._emit(value, "value added")

    async def disconnect(self) -> None:
        """Best-effort teardown; errors are logged, never raised."""
        self._closing = True
        for task in list(self._tasks):
            task.cancel()
        try:
            if self._client is not None:
                await self._client.disconnect()
        except (aiohttp.ClientError, OSError, RuntimeError) as exc:
            logger.warning({"event": "zwave_disconnect_error", "error": repr(exc)})
        if self._listen_task is not None:
            self._listen_task.cancel()
            await asyncio.gather(self._listen_task, return_exceptions=True)
            self._listen_task = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.info({"event": "zwave_stopped"})

    # --------------- Events ---------------
    def _on_listen_done(self, task: asyncio.Task) -> None:
        if self._closing or task.cancelled():
            return
        exc = task.exception()
        logger.error({"event": "zwave_connection_lost", "error": repr(exc)})
        if self._on_lost is not None:
            self._on_lost()

    def _watch_node(self, node: Any) -> None:
        if node.node_id in self._watched:
            return
        self._watched.add(node.node_id)
        for name in VALUE_EVENTS:
            node.on(name, lambda data, kind=name: self._on_value_event(data, kind))

    def _on_node_added(self, data: dict) -> None:
        node = data.get("node")
        if node is None:
            return
        logger.info({"event": "zwave_node_added", "node_id": node.node_id})
        self._watch_node(node)

    def _on_value_event(self, data: dict, kind: str) -> None:
        value = data.get("value") if isinstance(data, dict) else None
        if value is None:
            logger.debug({"event": "zwave_value_event_ignored", "kind": kind})
            return
        self._emit(value, kind)

    def _emit(self, value: Any, kind: str) -> None:
        try:
            event = mesh_event_from_value(value, kind)
        except AttributeError as exc:
            logger.debug({"event": "zwave_value_unmapped", "error": repr(exc)})
            return
        self._on_event(event)

    # --------------- Commands ---------------
    def _find_value(self, address: DeviceAddress) -> tuple[Any, Any] | None:
        if self._client is None or self._client.driver is None:
            return None
        node = self._client.driver.controller.nodes.get(address.node_id)
        if node is None:
            return None
        for value in node.values.values():
            if (
                value.command_class == address.command_class
                and (value.endpoint or 0) == address.instance
                and value.property_ == address.index
            ):
                return node, value
        return None

    def _writable(self, node: Any, value: Any) -> Any:
        """Read-only ``currentValue`` entries are set through ``targetValue``."""
        if getattr(value.metadata, "writeable", True):
            return value
        for candidate in node.values.values():
            if (
                candidate.command_class == value.command_class
                and candidate.endpoint == value.endpoint
                and candidate.property_ == "targetValue"
            ):
                return candidate
        return value

    def _schedule(self, coro: Coroutine[Any, Any, Any], address: DeviceAddress, op: str) -> None:
        task = asyncio.create_task(self._guard(coro, address, op))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro: Coroutine[Any, Any, Any], address: DeviceAddress, op: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - any driver error is logged per address
            logger.error(
                {"event": f"zwave_{op}_failed", "address": str(address), "error": repr(exc)}
            )

    def set_value(self, address: DeviceAddress, value: Scalar) -> None:
        found = self._find_value(address)
        if found is None:
            logger.warning({"event": "zwave_value_not_found", "address": str(address)})
            return
        node, target = found
        target = self._writable(node, target)
        if getattr(target.metadata, "type", None) == "boolean":
            value = bool(value)
        logger.info(
            {"event": "zwave_set_value", "address": str(address), "value": value}
        )
        self._schedule(node.async_set_value(target, value), address, "set_value")

    def refresh_value(self, address: DeviceAddress) -> None:
        found = self._find_value(address)
        if found is None:
            logger.warning({"event": "zwave_value_not_found", "address": str(address)})
            return
        node, target = found
        self._schedule(node.async_poll_value(target), address, "refresh_value")
