"""
One-shot timers on the asyncio event loop.

A Timer holds at most one pending callback. Starting it again cancels the
previous callback, so a client never has two timers of the same kind.
"""
import asyncio


class Timer:
    """Restartable one-shot timer built on loop.call_later()."""

    def __init__(self, name="timer"):
        self.name = name
        self.delay = None
        self._handle = None
        self._waiter = None

    @property
    def active(self):
        """True while a callback is scheduled and has not fired or been cancelled."""
        return self._handle is not None

    def start(self, delay, callback, *args):
        """Schedule callback(*args) after delay seconds, replacing any pending one."""
        self.cancel()
        self.delay = delay
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback, args)

    def cancel(self):
        """Drop the pending callback. A task blocked in sleep() gets CancelledError."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._waiter is not None:
            if not self._waiter.done():
                self._waiter.cancel()
            self._waiter = None

    async def sleep(self, delay):
        """Suspend the calling task until the timer fires.

        Cancelling the timer from elsewhere wakes the sleeper with
        CancelledError.
        """
        waiter = asyncio.get_running_loop().create_future()
        self.start(delay, _wake, waiter)
        self._waiter = waiter
        try:
            await waiter
        finally:
            if self._waiter is waiter:
                self._waiter = None
                if waiter.cancelled() and self._handle is not None:
                    # the sleeping task itself was cancelled
                    self._handle.cancel()
                    self._handle = None

    def _fire(self, callback, args):
        self._handle = None
        callback(*args)


def _wake(waiter):
    if not waiter.done():
        waiter.set_result(None)
