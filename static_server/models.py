from typing import BinaryIO, Dict, Iterator, Optional, Union
from dataclasses import dataclass, field
from urllib.parse import unquote, urlsplit
import os

CHUNK_SIZE = 64 * 1024

STATUS_MESSAGES = {
    200: "OK",
    302: "Found",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    500: "Internal Server Error",
    502: "Bad Gateway",
}

@dataclass
class HTTPRequest:
    """Model representing an HTTP request."""
    method: str
    path: str
    protocol: str
    headers: Dict[str, str]
    raw: bytes
    body: bytes = b""

    @classmethod
    def from_raw_data(cls, request_data: bytes) -> Optional['HTTPRequest']:
        """Create HTTPRequest instance from raw request bytes."""
        try:
            head, _, body = request_data.partition(b'\r\n\r\n')
            lines = head.decode('iso-8859-1').split('\r\n')
            if not lines:
                return None

            # Parse request line
            method, path, protocol = lines[0].strip().split()

            # Parse headers
            headers = {}
            for line in lines[1:]:
                line = line.strip()
                if not line:
                    break
                key, value = line.split(':', 1)
                headers[key.strip()] = value.strip()

            return cls(
                method=method.upper(),
                path=path,
                protocol=protocol,
                headers=headers,
                raw=request_data,
                body=body
            )
        except Exception:
            return None

    @property
    def url_path(self) -> str:
        """Percent-decoded path without the query string."""
        return unquote(urlsplit(self.path).path) or "/"

    @property
    def query(self) -> str:
        return urlsplit(self.path).query

@dataclass
class HTTPResponse:
    """Model representing an HTTP response."""
    status_code: int
    status_message: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Union[str, bytes] = b""
    raw_response: Optional[bytes] = None
    # Streamed in chunks instead of body when set; closed once written
    file: Optional[BinaryIO] = None

    @property
    def body_bytes(self) -> bytes:
        if isinstance(self.body, str):
            return self.body.encode('utf-8')
        return self.body

    @property
    def content_length(self) -> int:
        if self.file is not None:
            return os.fstat(self.file.fileno()).st_size
        return len(self.body_bytes)

    def iter_bytes(self, include_body: bool = True) -> Iterator[bytes]:
        """Serialize the response for the wire, one chunk at a time."""
        try:
            if self.raw_response is not None:
                yield self.raw_response
                return

            headers = dict(self.headers)
            headers['Content-Length'] = str(self.content_length)
            headers.setdefault('Connection', 'close')

            headers_str = ''.join(f"{k}: {v}\r\n" for k, v in headers.items())
            yield (
                f"HTTP/1.1 {self.status_code} {self.status_message}\r\n"
                f"{headers_str}"
                f"\r\n"
            ).encode('iso-8859-1')

            if not include_body:
                return
            if self.file is None:
                yield self.body_bytes
                return
            while True:
                chunk = self.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        if self.file is not None:
            self.file.close()

    @classmethod
    def from_raw_response(cls, raw_response: bytes) -> Optional['HTTPResponse']:
        """Create HTTPResponse instance from raw response data."""
        try:
            # Split headers and body
            header_end = raw_response.find(b'\r\n\r\n')
            if header_end == -1:
                return None

            headers_data = raw_response[:header_end].decode('iso-8859-1')
            body = raw_response[header_end + 4:]

            # Parse status line
            status_line, *header_lines = headers_data.split('\r\n')
            protocol, status_code, *status_message = status_line.split(' ')

            # Parse headers
            headers = {}
            for line in header_lines:
                if ':' in line:
                    key, value = line.split(':', 1)
                    headers[key.strip()] = value.strip()

            return cls(
                status_code=int(status_code),
                status_message=' '.join(status_message),
                headers=headers,
                body=body,
                raw_response=raw_response
            )
        except Exception:
            return None

    @classmethod
    def html(cls, status_code: int, body: Union[str, bytes]) -> 'HTTPResponse':
        """Create an HTML response with the standard reason phrase."""
        return cls(
            status_code=status_code,
            status_message=STATUS_MESSAGES.get(status_code, ""),
            headers={'Content-Type': 'text/html; charset=utf-8'},
            body=body
        )

    @classmethod
    def redirect(cls, location: str) -> 'HTTPResponse':
        """Create a 302 redirect."""
        return cls(
            status_code=302,
            status_message=STATUS_MESSAGES[302],
            headers={
                'Location': location,
                'Content-Type': 'text/plain; charset=utf-8'
            },
            body=f"Found. Redirecting to {location}"
        )

    @classmethod
    def create_error(cls, status_code: int, message: str) -> 'HTTPResponse':
        """Create a plain text error response."""
        return cls(
            status_code=status_code,
            status_message=message,
            headers={'Content-Type': 'text/plain'},
            body=message
        )
