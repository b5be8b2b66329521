import re
import socket
import select
import logging
from typing import Optional, Tuple, Union

from .models import HTTPRequest, HTTPResponse
from .proxy import UpstreamProxy
from .router import StaticRouter

logger = logging.getLogger(__name__)

Router = Union[StaticRouter, UpstreamProxy]


class BadRequestError(Exception):
    """The client sent a request that cannot be read."""


class RequestHandler:
    """Handles processing of individual HTTP requests."""

    def __init__(self, router: Router, timeout: int = 5):
        """
        Initialize the request handler.

        Args:
            router: Static router or upstream proxy of the instance
            timeout: Socket timeout in seconds
        """
        self._router = router
        self._timeout = timeout

    def handle_client(self, client_socket: socket.socket,
                      client_address: Tuple[str, int]) -> None:
        """
        Handle an individual client connection.

        Args:
            client_socket: Socket object for client connection
            client_address: Tuple of client's IP and port
        """
        client_socket.settimeout(self._timeout)

        try:
            try:
                request_data = self._read_request(client_socket)
                if not request_data:
                    return

                request = HTTPRequest.from_raw_data(bytes(request_data))
                if not request:
                    raise BadRequestError("malformed request line or headers")
            except BadRequestError as e:
                logger.error(f"Bad request from {client_address}: {e}")
                self._send(client_socket, HTTPResponse.create_error(400, "Bad Request"))
                return

            self._send(client_socket, self._router.route(request),
                       include_body=request.method != "HEAD")

        except Exception as e:
            logger.error(f"Error handling client {client_address}: {e}")
        finally:
            client_socket.close()

    def _send(self, client_socket: socket.socket, response: HTTPResponse,
              include_body: bool = True) -> None:
        chunks = response.iter_bytes(include_body=include_body)
        try:
            for chunk in chunks:
                client_socket.sendall(chunk)
        finally:
            chunks.close()
            response.close()

    def _read_request(self, client_socket: socket.socket) -> Optional[bytearray]:
        """Read the complete HTTP request from the client socket."""
        request_data = bytearray()

        while True:
            ready = select.select([client_socket], [], [], self._timeout)
            if not ready[0]:  # Timeout
                break

            chunk = client_socket.recv(4096)
            if not chunk:
                break

            request_data.extend(chunk)
            # Headers and body are separated by a blank line
            if b'\r\n\r\n' in request_data:
                headers = request_data.split(b'\r\n\r\n')[0].decode('iso-8859-1')

                for line in headers.split('\r\n'):
                    if line.lower().startswith('content-length:'):
                        value = line.split(':', 1)[1].strip()
                        if not re.fullmatch(r"[0-9]+", value):
                            raise BadRequestError(f"invalid Content-Length: {value!r}")
                        content_length = int(value)

                        # headers + separator + body
                        total_length = len(headers) + 4 + content_length

                        try:
                            while len(request_data) < total_length:
                                chunk = client_socket.recv(4096)
                                if not chunk:  # Connection closed
                                    break
                                request_data.extend(chunk)
                        except socket.timeout:
                            pass
                        if len(request_data) < total_length:
                            raise BadRequestError(
                                f"body shorter than Content-Length {content_length}")
                break

        return request_data if request_data else None
