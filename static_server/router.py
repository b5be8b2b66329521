import os
import logging
import mimetypes
from typing import Optional
from urllib.parse import quote

from .config import ServerConfig, StaticMode
from .models import STATUS_MESSAGES, HTTPRequest, HTTPResponse

logger = logging.getLogger(__name__)

NOT_FOUND_BODY = "<h1>404 Not Found</h1>"
FORBIDDEN_BODY = "<h1>403 Forbidden</h1>"
INTERNAL_ERROR_BODY = "<h1>500 Internal Server Error</h1>"

HTML_EXTENSION = ".html"
INDEX_FILE = "index.html"


def strip_mount(path: str, mount_point: str) -> Optional[str]:
    """
    Make a request path relative to the mount point.

    Args:
        path: Decoded request path, starting with '/'
        mount_point: Mount point as returned by ServerConfig.mount_point

    Returns:
        The path below the mount point starting with '/', or None when the
        request is outside of it
    """
    if mount_point == "/":
        return path
    if path == mount_point.rstrip("/"):
        return "/"
    if path.startswith(mount_point):
        return path[len(mount_point) - 1:]
    return None


class StaticRouter:
    """Catch-all route resolving request paths to files under the root."""

    def __init__(self, config: ServerConfig):
        """
        Initialize the router.

        Args:
            config: Validated configuration of a static instance
        """
        if not isinstance(config.mode, StaticMode):
            raise TypeError(f"server #{config.number} is not a static server")
        self._config = config
        self._mode = config.mode
        self._root = os.path.realpath(config.mode.root)

    def route(self, request: HTTPRequest) -> HTTPResponse:
        """Resolve a request; never raises."""
        try:
            response = self._resolve(request)
        except Exception as e:
            logger.error(f"Error routing {request.method} {request.path} "
                         f"(server #{self._config.number}): {e}")
            response = self._error_page(500, self._config.internal_error_path)

        response.headers.update(self._mode.headers)
        return response

    def _resolve(self, request: HTTPRequest) -> HTTPResponse:
        path = strip_mount(request.url_path, self._config.mount_point)
        if path is None:
            return self._not_found()

        candidate = self._candidate(path)
        if candidate is None:
            return self._not_found()

        if self._config.redirect_html_extension and path.endswith(HTML_EXTENSION) \
                and self._is_file(candidate):
            return HTTPResponse.redirect(self._mounted(self._strip_html(path)))

        if self._is_file(candidate):
            return self._send_file(candidate)

        if self._is_file(candidate + HTML_EXTENSION):
            if path == "/index":
                return HTTPResponse.redirect(self._config.mount_point)
            return self._send_file(candidate + HTML_EXTENSION)

        index = os.path.join(candidate, INDEX_FILE)
        if os.path.isdir(candidate) and self._is_file(index):
            # Relative links in the index resolve against the directory
            if not request.url_path.endswith("/"):
                return HTTPResponse.redirect(quote(request.url_path + "/"))
            return self._send_file(index)

        return self._not_found()

    def _candidate(self, path: str) -> Optional[str]:
        """root + path, or None when '..' segments climb out of the root."""
        candidate = os.path.normpath(os.path.join(self._root, path.lstrip("/")))
        if not self._inside_root(candidate):
            logger.warning(f"Path traversal attempt: {path} (server #{self._config.number})")
            return None
        return candidate

    def _inside_root(self, path: str) -> bool:
        return path == self._root or path.startswith(self._root.rstrip(os.sep) + os.sep)

    def _is_file(self, path: str) -> bool:
        """Regular file below the root once symlinks are resolved."""
        try:
            return os.path.isfile(path) and self._inside_root(os.path.realpath(path))
        except (OSError, ValueError):
            return False

    def _send_file(self, path: str) -> HTTPResponse:
        extension = os.path.splitext(path)[1].lstrip(".")
        if not self._mode.allows(extension):
            return self._error_page(403, self._config.forbidden_path)

        try:
            f = open(path, 'rb')
        except OSError:
            return self._not_found()

        content_type, _ = mimetypes.guess_type(path)
        return HTTPResponse(
            status_code=200,
            status_message=STATUS_MESSAGES[200],
            headers={'Content-Type': content_type or 'application/octet-stream'},
            file=f
        )

    def _not_found(self) -> HTTPResponse:
        return self._error_page(404, self._config.not_found_path)

    def _error_page(self, status_code: int, page_path: str) -> HTTPResponse:
        """Custom page from the root when one is configured, else the fixed body."""
        fixed = {
            403: FORBIDDEN_BODY,
            404: NOT_FOUND_BODY,
            500: INTERNAL_ERROR_BODY,
        }[status_code]

        if page_path != "/":
            page = os.path.join(self._root, page_path)
            if self._is_file(page):
                try:
                    with open(page, 'rb') as f:
                        return HTTPResponse.html(status_code, f.read())
                except OSError:
                    pass
        return HTTPResponse.html(status_code, fixed)

    def _mounted(self, path: str) -> str:
        return self._config.mount_point.rstrip("/") + path

    @staticmethod
    def _strip_html(path: str) -> str:
        stripped = path[:-len(HTML_EXTENSION)]
        if stripped == "/index" or stripped.endswith("/index"):
            stripped = stripped[:-len("index")]
        return stripped
