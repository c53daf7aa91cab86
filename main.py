#!/usr/bin/env python3
"""
CodeSynapse - Real-time Codebase Visualization

Starts the graph server for the current project and opens the client in a
browser.
"""

import argparse
import socket
import sys
import threading
import webbrowser

import uvicorn

from codesynapse import __version__
from codesynapse.config import settings
from codesynapse.utils.logger import setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="CodeSynapse - Real-time Codebase Visualization")
    parser.add_argument("--host", default=settings.host, help="Host to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on")
    parser.add_argument("--no-open", action="store_true", help="Do not open a browser")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    return parser.parse_args(argv)


def find_free_port(host: str, port: int, attempts: int = 10) -> int:
    """Return the first port from ``port`` upwards that can be bound."""
    for candidate in range(port, port + attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, candidate))
            except OSError:
                continue
        return candidate
    raise OSError(f"No free port in {port}-{port + attempts - 1}")


def main(argv=None):
    """Main entry point for the CodeSynapse server."""
    args = parse_args(argv)
    logger = setup_logging(args.log_level.upper(), settings.log_file).bind(component="cli")

    try:
        port = find_free_port(args.host, args.port)
    except OSError as e:
        logger.error(str(e))
        sys.exit(1)
    if port != args.port:
        logger.warning(f"Port {args.port} is in use, using {port}")

    url = f"http://{args.host}:{port}"
    logger.info(f"CodeSynapse v{__version__}")
    logger.info(f"URL: {url}")

    if not args.no_open:
        # Give the server a moment to bind before the browser hits it
        threading.Timer(2.0, webbrowser.open, args=(url,)).start()

    try:
        uvicorn.run("api_server:app", host=args.host, port=port, log_level=args.log_level.lower())
    except KeyboardInterrupt:
        logger.info("Shutting down CodeSynapse...")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
