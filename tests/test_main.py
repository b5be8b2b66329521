import unittest
import io
import json
import os
import socket
import sys
import tempfile
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

# Add the parent directory to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from static_server import __main__ as cli
from static_server.server import Server

class TestBootstrap(unittest.TestCase):
    """Test cases for startup and configuration error reporting."""

    def _run(self, raw_servers):
        """Run main() against a temporary config with serve() mocked out."""
        stdout, stderr = io.StringIO(), io.StringIO()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "index.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(raw_servers, f)

            with mock.patch.object(cli, "serve") as serve, \
                    redirect_stdout(stdout), redirect_stderr(stderr):
                try:
                    cli.main([path])
                    code = 0
                except SystemExit as e:
                    code = e.code
        return code, stdout.getvalue(), stderr.getvalue(), serve

    def test_missing_root_and_proxy_exits(self):
        # Act
        code, out, err, serve = self._run([{}])

        # Assert
        self.assertEqual(code, 1)
        self.assertIn("[ERROR]:", err)
        self.assertIn("\x1b[31m", err)
        self.assertIn("A 'root' or 'proxy' is required", err)
        self.assertIn("(server #1)", err)
        self.assertIn("Program has exited.", out)
        serve.assert_not_called()

    def test_reports_every_failing_server(self):
        code, out, err, serve = self._run([
            {"root": "public"},
            {"proxy": "http://localhost:9000", "port": 80},
            {"root": "public", "allowedFileTypes": ["html"], "forbiddenFileTypes": ["exe"]},
        ])

        self.assertEqual(code, 1)
        self.assertNotIn("(server #1)", err)
        self.assertIn("(server #2)", err)
        self.assertIn("(server #3)", err)
        self.assertEqual(err.count("[ERROR]:"), 2)
        serve.assert_not_called()

    def test_valid_config_starts_every_server(self):
        code, out, err, serve = self._run([
            {"root": "public", "port": 3000},
            {"proxy": "http://localhost:9000"},
        ])

        self.assertEqual(code, 0)
        servers = serve.call_args[0][0]
        self.assertEqual(len(servers), 2)
        self.assertTrue(all(isinstance(s, Server) for s in servers))
        self.assertEqual(servers[0].port, 3000)
        self.assertEqual(servers[1].port, 8080)
        for server in servers:
            server.shutdown()

    def test_port_in_use_exits(self):
        # Arrange
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("localhost", 0))
        blocker.listen(1)
        self.addCleanup(blocker.close)
        port = blocker.getsockname()[1]
        stdout, stderr = io.StringIO(), io.StringIO()

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "index.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump([{"root": tmp, "port": port}], f)

            # Act
            with redirect_stdout(stdout), redirect_stderr(stderr):
                with self.assertRaises(SystemExit) as ctx:
                    cli.main([path])

        # Assert
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn(f"Could not listen on localhost:{port}", stderr.getvalue())
        self.assertIn("(server #1)", stderr.getvalue())
        self.assertIn("Program has exited.", stdout.getvalue())

    def test_no_servers_returns(self):
        code, out, err, serve = self._run([])

        self.assertEqual(code, 0)
        serve.assert_called_once_with([])

    def test_missing_config_file(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr), redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                cli.main([os.path.join(tempfile.gettempdir(), "no-such-config.json")])

        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("Configuration file not found", stderr.getvalue())

    def test_parse_args_defaults(self):
        args = cli.parse_args([])

        self.assertEqual(args.config, os.path.join("config", "index.json"))
        self.assertEqual(args.host, "localhost")
        self.assertEqual(args.log_level, "INFO")

if __name__ == '__main__':
    unittest.main()
