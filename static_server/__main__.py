"""
Start every server listed in a JSON configuration file.

    python -m static_server [CONFIG] [--host HOST] [--log-level LEVEL]
"""

import sys
import argparse
import logging
import threading
from typing import List, NoReturn, Optional

from .config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_HOST,
    ConfigurationBatchError,
    load_config,
    validate_servers,
)
from .server import Server

logger = logging.getLogger(__name__)

RED = "\x1b[31m"
RESET = "\x1b[0m"


def report_error(message: str) -> None:
    print(RED, "[ERROR]:", RESET, message, file=sys.stderr)


def exit_with_errors(messages: List[str]) -> NoReturn:
    for message in messages:
        report_error(message)
    print("Program has exited.")
    sys.exit(1)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="static_server",
        description="Static file servers and reverse proxies from a JSON configuration."
    )
    parser.add_argument("config", nargs="?", default=DEFAULT_CONFIG_PATH,
                        help=f"path to the configuration file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--host", default=DEFAULT_HOST,
                        help=f"address every server binds to (default: {DEFAULT_HOST})")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def build_servers(raw_servers, host: str = DEFAULT_HOST) -> List[Server]:
    """Validate the whole batch, then construct one server per entry."""
    try:
        configs = validate_servers(raw_servers)
    except ConfigurationBatchError as batch:
        exit_with_errors([
            f"{problem} (server #{error.number})"
            for error in batch.errors
            for problem in error.problems
        ])
    return [Server(config, host=host) for config in configs]


def serve(servers: List[Server]) -> None:
    """
    Run every server in its own thread until interrupted.

    Exits with status 1 when a server cannot bind its socket or every
    server has stopped on its own.
    """
    if not servers:
        logger.warning("No servers configured")
        return

    threads = []
    for server in servers:
        thread = threading.Thread(target=server.start, name=f"server-{server.config.number}")
        thread.daemon = True
        thread.start()
        threads.append(thread)

    try:
        failed = [server for server in servers if not server.wait_until_ready()]
        if failed:
            exit_with_errors([
                f"Could not listen on {server.host}:{server.port}: {server.error} "
                f"(server #{server.config.number})"
                for server in failed
            ])

        while any(thread.is_alive() for thread in threads):
            for thread in threads:
                thread.join(timeout=0.5)
        exit_with_errors(["Every server has stopped."])
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        for server in servers:
            server.shutdown()


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    try:
        raw_servers = load_config(args.config)
    except FileNotFoundError:
        exit_with_errors([f"Configuration file not found: {args.config}"])

    serve(build_servers(raw_servers, host=args.host))


if __name__ == '__main__':
    main()
