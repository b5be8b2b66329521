import socket
import select
import logging
from typing import Optional
from urllib.parse import urlsplit

from .config import ServerConfig, ProxyMode
from .models import HTTPRequest, HTTPResponse
from .router import NOT_FOUND_BODY, strip_mount

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = {"host", "connection", "keep-alive", "proxy-connection"}


class UpstreamProxy:
    """
    Forwards every request under the mount point to a single upstream.
    Method, headers and body are passed through; the path below the mount
    point is appended to the upstream base path.
    """

    def __init__(self, config: ServerConfig, timeout: int = 5):
        """
        Initialize the proxy.

        Args:
            config: Validated configuration of a proxy instance
            timeout: Upstream socket timeout in seconds
        """
        if not isinstance(config.mode, ProxyMode):
            raise TypeError(f"server #{config.number} is not a proxy server")
        self._config = config
        self._timeout = timeout

        parsed_url = urlsplit(config.mode.upstream)
        if parsed_url.scheme not in ("", "http"):
            logger.warning(f"Only plain http upstreams are supported, got "
                           f"{config.mode.upstream} (server #{config.number})")
        self._upstream_host = parsed_url.hostname or "localhost"
        self._upstream_port = parsed_url.port or 80
        self._upstream_path = parsed_url.path.rstrip("/")

    @property
    def upstream(self) -> str:
        return self._config.mode.upstream

    def route(self, request: HTTPRequest) -> HTTPResponse:
        """Forward the request to the upstream server."""
        path = strip_mount(urlsplit(request.path).path or "/", self._config.mount_point)
        if path is None:
            return HTTPResponse.html(404, NOT_FOUND_BODY)

        target = self._upstream_path + path
        if request.query:
            target = f"{target}?{request.query}"

        try:
            backend_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            backend_socket.settimeout(self._timeout)

            try:
                # Connect to upstream
                backend_socket.connect((self._upstream_host, self._upstream_port))

                # Send request
                backend_socket.sendall(self._build_request(request, target))

                # Read response
                response_data = self._read_response(backend_socket)
                if response_data:
                    response = HTTPResponse.from_raw_response(response_data)
                    if response:
                        return response

                    # Fallback to basic response if parsing fails
                    return HTTPResponse(
                        status_code=200,
                        status_message="OK",
                        headers={'Content-Type': 'application/octet-stream'},
                        body=response_data
                    )

            finally:
                backend_socket.close()

        except OSError as e:
            logger.error(f"Error forwarding request to {self.upstream} "
                         f"(server #{self._config.number}): {e}")

        return HTTPResponse.create_error(502, "Bad Gateway")

    def _build_request(self, request: HTTPRequest, target: str) -> bytes:
        """Rewrite the request line and Host; everything else is unchanged."""
        host = self._upstream_host
        if self._upstream_port != 80:
            host = f"{host}:{self._upstream_port}"

        lines = [f"{request.method} {target} {request.protocol}", f"Host: {host}"]
        for key, value in request.headers.items():
            if key.lower() not in HOP_BY_HOP_HEADERS:
                lines.append(f"{key}: {value}")
        lines.append("Connection: close")

        head = ("\r\n".join(lines) + "\r\n\r\n").encode('iso-8859-1')
        return head + request.body

    def _read_response(self, backend_socket: socket.socket) -> Optional[bytes]:
        """Read the complete response until the upstream closes the connection."""
        response = bytearray()
        while True:
            ready = select.select([backend_socket], [], [], self._timeout)
            if not ready[0]:  # Timeout
                break

            data = backend_socket.recv(4096)
            if not data:
                break
            response.extend(data)

        return bytes(response) if response else None
