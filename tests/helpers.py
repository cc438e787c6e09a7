"""Async polling helpers and fakes shared by tests."""

import asyncio


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


class FakeTransport:
    """Records what the controller does with its transport."""

    def __init__(self, log=None):
        self.config = None
        self.callbacks = None
        self.sent = []
        self.close_calls = 0
        self.frames_sent = 0
        self._log = log

    def connect(self, config, callbacks):
        self.config = config
        self.callbacks = callbacks
        return None

    def send(self, frame: bytes) -> bool:
        self.sent.append(frame)
        self.frames_sent += 1
        return True

    async def close(self) -> None:
        self.close_calls += 1
        if self._log is not None:
            self._log.append("transport")
