"""
main.py — runs the exam engine API under uvicorn

    python main.py [--host HOST] [--port PORT] [--no-browser]

Logs go to stdout and to config.LOG_FILE (next to the session directory).
"""

import argparse
import logging
import os
import socket
import sys
import threading
import time
import webbrowser

import uvicorn

import config
from api.app import create_app

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    file_error = None
    try:
        os.makedirs(os.path.dirname(config.LOG_FILE), exist_ok=True)
        handlers.append(logging.FileHandler(config.LOG_FILE, encoding="utf-8"))
    except OSError as e:
        file_error = e

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
    if file_error is not None:
        logger.warning(f"Cannot write {config.LOG_FILE}, logging to console only: {file_error}")


def _port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def _open_browser_when_ready(url: str, host: str, port: int) -> None:
    deadline = time.time() + config.SERVER_READY_TIMEOUT
    while time.time() < deadline:
        if _port_in_use(host, port):
            webbrowser.open(url)
            return
        time.sleep(0.2)
    logger.warning(f"Server not reachable after {config.SERVER_READY_TIMEOUT:.0f}s, open {url} manually")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Timed exam session engine")
    parser.add_argument("--host", default=config.DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=config.DEFAULT_PORT)
    parser.add_argument("--no-browser", action="store_true", help="do not open the web UI")
    args = parser.parse_args(argv)

    _setup_logging()

    if _port_in_use(args.host, args.port):
        logger.error(f"Port {args.port} on {args.host} is taken. Is another instance running?")
        return 1

    backends = "HTTP" if config.QUESTION_BANK_URL or config.RESULT_STORE_URL else "in-memory"
    logger.info(f"Serving exam engine on {args.host}:{args.port} ({backends} backends)")

    if not args.no_browser:
        url = f"http://{args.host}:{args.port}"
        threading.Thread(
            target=_open_browser_when_ready, args=(url, args.host, args.port), daemon=True
        ).start()

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
