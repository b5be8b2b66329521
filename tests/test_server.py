import unittest
import os
import socket
import sys
import tempfile
import threading

import requests

# Add the parent directory to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from static_server.config import validate_server_config
from static_server.proxy import UpstreamProxy
from static_server.router import StaticRouter
from static_server.server import Server, create_router

class TestServer(unittest.TestCase):
    """Test cases for binding and running a single server."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        with open(os.path.join(self._tmp.name, "index.html"), "wb") as f:
            f.write(b"<p>home</p>")
        self.config = validate_server_config({"root": self._tmp.name}, 1)

    def tearDown(self):
        self._tmp.cleanup()

    def test_create_router(self):
        proxy = validate_server_config({"proxy": "http://localhost:9000"}, 2)

        self.assertIsInstance(create_router(self.config), StaticRouter)
        self.assertIsInstance(create_router(proxy), UpstreamProxy)

    def test_serves_until_shutdown(self):
        # Arrange
        server = Server(self.config, host="localhost", port=0)
        thread = threading.Thread(target=server.start)
        thread.daemon = True

        # Act
        thread.start()
        ready = server.wait_until_ready(timeout=5)
        response = requests.get(f"http://localhost:{server.port}/", timeout=5)
        server.shutdown()
        thread.join(timeout=5)

        # Assert
        self.assertTrue(ready)
        self.assertIsNone(server.error)
        self.assertNotEqual(server.port, 0)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"<p>home</p>")
        self.assertFalse(thread.is_alive())

    def test_port_in_use(self):
        # Arrange
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("localhost", 0))
        blocker.listen(1)
        self.addCleanup(blocker.close)
        port = blocker.getsockname()[1]
        server = Server(self.config, host="localhost", port=port)

        # Act
        with self.assertLogs("static_server.server", level="ERROR") as logs:
            server.start()

        # Assert
        self.assertFalse(server.wait_until_ready(timeout=1))
        self.assertIsInstance(server.error, OSError)
        self.assertIn(f"could not bind localhost:{port}", logs.output[0])
        server.shutdown()

if __name__ == '__main__':
    unittest.main()
