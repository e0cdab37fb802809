"""
Module for the shared cancellation signal observed by running transfers.
"""
import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class CancellationToken:
    """A set-once flag shared by every task of one command invocation."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.debug("cancellation requested")
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


@contextmanager
def cancel_on_interrupt(token: CancellationToken) -> Iterator[CancellationToken]:
    """Cancel ``token`` on SIGINT instead of raising KeyboardInterrupt.

    A second interrupt while the token is already cancelled falls back to
    the default handler.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def handler(signum, frame):
        if token.is_cancelled():
            signal.default_int_handler(signum, frame)
        logger.warning("interrupted, waiting for in-flight transfers to finish")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
