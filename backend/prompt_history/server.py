"""Background uvicorn server bound to the first free loopback port."""

from __future__ import annotations

import socket
import threading
import time

import uvicorn
from fastapi import FastAPI

from prompt_history.core.errors import StorageIOError
from prompt_history.core.logging import get_logger
from prompt_history.history.store import HistoryStore

logger = get_logger(__name__)

LOOPBACK_HOST = "127.0.0.1"


class PortUnavailableError(StorageIOError):
    """No port in the search range could be bound."""


def bind_loopback(preferred_port: int, port_search: int) -> socket.socket:
    """Bind ``preferred_port`` or the next free port after it."""
    last_port = min(preferred_port + max(port_search, 1) - 1, 65535)
    for port in range(preferred_port, last_port + 1):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((LOOPBACK_HOST, port))
        except OSError:
            sock.close()
            continue
        sock.listen(128)
        if port != preferred_port:
            logger.warning("Port %s busy; history server using %s", preferred_port, port)
        return sock
    raise PortUnavailableError(f"no free port in {preferred_port}..{last_port}")


class LocalServer:
    """Runs the history API on a daemon thread for the lifetime of the UI."""

    def __init__(
        self,
        app: FastAPI,
        store: HistoryStore,
        preferred_port: int,
        port_search: int = 200,
        log_level: str = "warning",
    ) -> None:
        self.app = app
        self.store = store
        self.preferred_port = preferred_port
        self.port_search = port_search
        self.log_level = log_level
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._socket: socket.socket | None = None

    @property
    def port(self) -> int | None:
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, timeout: float = 10.0) -> int:
        """Bind, point the rendered pages at the bound port and start serving."""
        if self.running:
            return self.port or self.preferred_port
        self._socket = bind_loopback(self.preferred_port, self.port_search)
        port = self._socket.getsockname()[1]
        self.store.set_server_port(port)

        config = uvicorn.Config(self.app, log_level=self.log_level, access_log=False)
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._socket]},
            name="prompt-history-server",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise PortUnavailableError(f"history server failed to start on port {port}")
            time.sleep(0.05)
        logger.info("History server listening on http://%s:%s", LOOPBACK_HOST, port)
        return port

    def stop(self, timeout: float = 5.0) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        if self._socket is not None:
            self._socket.close()
        self._server = None
        self._thread = None
        self._socket = None


__all__ = ["LocalServer", "PortUnavailableError", "bind_loopback", "LOOPBACK_HOST"]
