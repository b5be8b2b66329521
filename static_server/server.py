import socket
import threading
import logging
from typing import Optional

from .config import DEFAULT_HOST, ServerConfig
from .handler import RequestHandler, Router
from .proxy import UpstreamProxy
from .router import StaticRouter

logger = logging.getLogger(__name__)


def create_router(config: ServerConfig) -> Router:
    """Mount the upstream proxy or the static catch-all route."""
    if config.is_proxy:
        return UpstreamProxy(config)
    return StaticRouter(config)


class Server:
    """One configured instance bound to its own listening socket."""

    def __init__(self, config: ServerConfig, host: str = DEFAULT_HOST,
                 port: Optional[int] = None):
        """
        Initialize the server.

        Args:
            config: Validated configuration of the instance
            host: Host address to bind
            port: Overrides the configured port; 0 picks a free port
        """
        self._config = config
        self._host = host
        self._port = config.listen_port if port is None else port

        # Initialize server socket
        self._server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Initialize request handler
        self._handler = RequestHandler(create_router(config))

        self._running = False
        self._listening = False
        self._error: Optional[OSError] = None
        self._ready = threading.Event()

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def host(self) -> str:
        """Get the host address."""
        return self._host

    @property
    def port(self) -> int:
        """Get the port number; the bound port once listening."""
        return self._port

    @property
    def error(self) -> Optional[OSError]:
        """Why the socket could not be bound, if it could not."""
        return self._error

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening; False if binding failed."""
        return self._ready.wait(timeout) and self._error is None

    def start(self) -> None:
        """Bind the socket and serve until shutdown()."""
        self._running = True
        try:
            try:
                self._server_socket.bind((self._host, self._port))
                self._server_socket.listen(128)
            except OSError as e:
                self._error = e
                self._running = False
                logger.error(f"Server #{self._config.number} could not bind "
                             f"{self._host}:{self._port}: {e}")
                return

            self._listening = True
            self._port = self._server_socket.getsockname()[1]
            kind = "Proxy" if self._config.is_proxy else "Static"
            logger.info(f"{kind} server #{self._config.number} started on "
                        f"{self._host}:{self._port}")
            self._ready.set()

            while self._running:
                try:
                    client_socket, client_address = self._server_socket.accept()
                    if not self._running:
                        client_socket.close()
                        break

                    # Handle each client in a separate thread
                    thread = threading.Thread(
                        target=self._handler.handle_client,
                        args=(client_socket, client_address)
                    )
                    thread.daemon = True
                    thread.start()
                except OSError as e:
                    if self._running:  # Only log if we're still meant to be running
                        logger.error(f"Server #{self._config.number} error: {e}")

        finally:
            self._ready.set()
            self._server_socket.close()

    def shutdown(self) -> None:
        """Shutdown the server gracefully."""
        self._running = False
        if self._listening:
            # Create a dummy connection to unblock accept()
            try:
                with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                    s.settimeout(1)
                    s.connect((self._host, self._port))
            except OSError:
                pass
        self._server_socket.close()
