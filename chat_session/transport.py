"""HTTP adapter whose in-flight connections can be aborted from another thread.

Closing a ``requests.Response`` does not wake a thread blocked in ``recv``
while it waits for response headers or the next body chunk. The adapter
below hands every connection checked out on a watched thread to the active
:class:`~chat_session.cancellation.CancellationToken`; cancelling the token
shuts the socket down, which makes the pending read return immediately.
"""

from __future__ import annotations

import logging
import socket
import threading
from contextlib import contextmanager
from typing import Iterator, List

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

_watch = threading.local()


class _AbortableConnectionMixin:
    aborted = False

    def connect(self) -> None:
        super().connect()  # type: ignore[misc]
        if self.aborted:
            self._shutdown_socket()

    def close(self) -> None:
        self.aborted = False
        super().close()  # type: ignore[misc]

    def abort(self) -> None:
        self.aborted = True
        self._shutdown_socket()

    def _shutdown_socket(self) -> None:
        sock = getattr(self, "sock", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            logger.debug("Socket already closed while aborting %r", self, exc_info=True)


class AbortableHTTPConnection(_AbortableConnectionMixin, HTTPConnection):
    pass


class AbortableHTTPSConnection(_AbortableConnectionMixin, HTTPSConnection):
    pass


def _report_checkout(conn) -> None:
    on_checkout = getattr(_watch, "on_checkout", None)
    if on_checkout is not None:
        on_checkout(conn)


class _WatchedHTTPConnectionPool(HTTPConnectionPool):
    ConnectionCls = AbortableHTTPConnection

    def _get_conn(self, timeout=None):
        conn = super()._get_conn(timeout)
        _report_checkout(conn)
        return conn


class _WatchedHTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = AbortableHTTPSConnection

    def _get_conn(self, timeout=None):
        conn = super()._get_conn(timeout)
        _report_checkout(conn)
        return conn


class AbortableAdapter(HTTPAdapter):
    """``HTTPAdapter`` whose pools build abortable connections."""

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": _WatchedHTTPConnectionPool,
            "https": _WatchedHTTPSConnectionPool,
        }


@contextmanager
def abort_on_cancel(cancel_token: CancellationToken) -> Iterator[None]:
    """Abort connections used on this thread when ``cancel_token`` fires.

    Registrations are withdrawn on exit so a pooled connection reused by a
    later request is never shut down by a stale token.
    """
    registered: List = []

    def on_checkout(conn) -> None:
        abort = getattr(conn, "abort", None)
        if abort is None:
            return
        registered.append(abort)
        cancel_token.add_callback(abort)

    previous = getattr(_watch, "on_checkout", None)
    _watch.on_checkout = on_checkout
    try:
        yield
    finally:
        _watch.on_checkout = previous
        for abort in registered:
            cancel_token.remove_callback(abort)
