class FakeMessage:
    def __init__(self, topic, payload, qos=0, retain=False):
        self.topic = topic
        self.payload = payload if isinstance(payload, bytes) else str(payload).encode()
        self.qos = qos
        self.retain = retain


class FakeMQTT:
    def __init__(self):
        self.published = []

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))


class FakeMesh:
    """Recording MeshTransport."""

    def __init__(self):
        self.commands = []

    def set_value(self, address, value):
        self.commands.append(("set", tuple(address), value))

    def refresh_value(self, address):
        self.commands.append(("refresh", tuple(address)))

    @property
    def refreshes(self):
        return [c for c in self.commands if c[0] == "refresh"]


class FakeHandle:
    def __init__(self, scheduler, delay, callback, args):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test says so."""

    def __init__(self):
        self.handles = []

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self, delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def live(self):
        return [h for h in self.handles if not h.cancelled]

    def fire_all(self):
        for handle in self.live:
            handle.cancelled = True
            handle.callback(*handle.args)
