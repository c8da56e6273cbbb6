#
"""
mqtt_dispatcher.py

Connects to the MQTT broker, subscribes to the umbrella topic covering all
configured devices, hands inbound messages to the bridge's dispatch queue and
publishes availability.
"""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from .addon_config import BridgeSettings
from .core_types import BrokerMessage
from .logging_setup import logger


class MqttDispatcher:
    """Thin owner of a paho client running its own network thread.

    - Publishes LWT: status_topic=offline (retain)
    - On connect: status_topic=online (retain), subscribes the umbrella topic
    - Reason-logged connect/disconnect; paho handles reconnect backoff
    - Optional TLS (default False)

    Callbacks run on paho's thread; everything handed to the bridge goes
    through ``loop.call_soon_threadsafe``.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        on_message: Callable[[BrokerMessage], None],
        client: Any = None,
    ) -> None:
        self.settings = settings
        self._on_message_cb = on_message
        self._loop: asyncio.AbstractEventLoop | None = None
        self.subscribed = asyncio.Event()
        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=settings.mqtt_client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        self._configure()

    def _configure(self) -> None:
        s = self.settings
        if s.mqtt_username is not None:
            self.client.username_pw_set(
                username=s.mqtt_username, password=(s.mqtt_password or "")
            )
        if s.mqtt_tls:
            self.client.tls_set()
        self.client.will_set(s.status_topic, payload="offline", qos=s.mqtt_qos, retain=True)
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    # ---- Callbacks (paho network thread) ----

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error(
                {"event": "mqtt_connect_failed", "reason": str(reason_code)}
            )
            return
        logger.info({"event": "mqtt_connected", "reason": str(reason_code)})
        client.publish(
            self.settings.status_topic,
            payload="online",
            qos=self.settings.mqtt_qos,
            retain=True,
        )
        # Re-subscribed on every (re)connect; clean sessions drop subscriptions.
        client.subscribe(self.settings.subscribe_topic, qos=self.settings.mqtt_qos)
        logger.info(
            {"event": "mqtt_subscribed", "topic": self.settings.subscribe_topic}
        )
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.subscribed.set)

    def _on_disconnect(
        self, client, userdata, disconnect_flags, reason_code, properties=None
    ):
        # Success reason = clean; anything else = unexpected, paho reconnects
        logger.warning({"event": "mqtt_disconnected", "reason": str(reason_code)})

    def _on_message(self, client, userdata, msg):
        message = BrokerMessage(topic=msg.topic, payload=msg.payload, retain=msg.retain)
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._on_message_cb, message)

    # ---- Lifecycle (event-loop thread) ----

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Connect asynchronously and start paho's network thread."""
        self._loop = loop
        s = self.settings
        try:
            resolved = socket.gethostbyname(s.mqtt_host)
        except OSError:
            resolved = "unresolved"
        logger.info(
            {
                "event": "mqtt_connect_attempt",
                "host": s.mqtt_host,
                "port": s.mqtt_port,
                "resolved": resolved,
                "client_id": s.mqtt_client_id,
                "user": bool(s.mqtt_username),
                "tls": s.mqtt_tls,
                "topic": s.subscribe_topic,
                "status_topic": s.status_topic,
            }
        )
        self.client.connect_async(s.mqtt_host, s.mqtt_port, s.mqtt_keepalive)
        self.client.loop_start()

    async def wait_subscribed(self) -> None:
        await self.subscribed.wait()

    def publish(
        self, topic: str, payload: str, qos: int = 0, retain: bool = False
    ) -> Any:
        return self.client.publish(topic, payload=payload, qos=qos, retain=retain)

    def stop(self) -> None:
        """Best-effort: mark offline, disconnect, stop the network thread."""
        try:
            self.client.publish(
                self.settings.status_topic,
                payload="offline",
                qos=self.settings.mqtt_qos,
                retain=True,
            )
            self.client.disconnect()
        except (OSError, ValueError, RuntimeError) as exc:
            logger.warning({"event": "mqtt_disconnect_error", "error": repr(exc)})
        finally:
            self.client.loop_stop()
        logger.info({"event": "mqtt_stopped"})
