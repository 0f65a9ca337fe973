"""``coinsight-api`` entrypoint: serve the FastAPI app with uvicorn."""

from __future__ import annotations

import argparse
import os
import socket
from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8030
MAX_PORT = 65535
PORT_SCAN_ATTEMPTS = 50


@dataclass(frozen=True)
class ServerSettings:
    host: str
    port: int
    log_level: str
    port_fallback: bool


def _validate_port(port: int, source: str) -> int:
    if not 1 <= port <= MAX_PORT:
        raise ValueError(f"{source} must be between 1 and {MAX_PORT}, got {port}.")
    return port


def _env_port() -> int:
    """Port from ``COINSIGHT_API_PORT`` or the default."""
    raw_value = os.getenv("COINSIGHT_API_PORT")
    if raw_value is None:
        return DEFAULT_PORT
    try:
        return _validate_port(int(raw_value), "COINSIGHT_API_PORT")
    except ValueError as exc:
        raise ValueError(f"Invalid COINSIGHT_API_PORT value: {raw_value}") from exc


def parse_settings(argv: Sequence[str] | None = None) -> ServerSettings:
    """Resolve server settings from arguments, then environment, then defaults."""
    parser = argparse.ArgumentParser(description="Run the Coinsight API server.")
    parser.add_argument("--host", default=os.getenv("COINSIGHT_API_HOST", DEFAULT_HOST))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", default=os.getenv("COINSIGHT_API_LOG_LEVEL", "info"))
    parser.add_argument(
        "--no-port-fallback",
        action="store_true",
        help="Fail instead of scanning forward when the port is taken.",
    )
    args = parser.parse_args(argv)

    if args.port is None:
        port = _env_port()
    else:
        try:
            port = _validate_port(args.port, "--port")
        except ValueError as exc:
            parser.error(str(exc))
    return ServerSettings(
        host=args.host,
        port=port,
        log_level=args.log_level,
        port_fallback=not args.no_port_fallback,
    )


def _is_port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _resolve_port(host: str, requested_port: int, max_attempts: int = PORT_SCAN_ATTEMPTS) -> int:
    """First bindable port at or after ``requested_port``."""
    last_candidate = min(MAX_PORT, requested_port + max_attempts - 1)
    for candidate in range(requested_port, last_candidate + 1):
        if _is_port_available(host, candidate):
            return candidate
    raise RuntimeError(f"No available port found from {requested_port} to {last_candidate}.")


def main(argv: Sequence[str] | None = None) -> None:
    import uvicorn

    settings = parse_settings(argv)
    port = settings.port
    if settings.port_fallback:
        port = _resolve_port(settings.host, settings.port)
        if port != settings.port:
            print(
                f"Port {settings.port} is in use, starting Coinsight API on {port} instead.",
                flush=True,
            )
    uvicorn.run(
        "coinsight.api.app:create_app",
        factory=True,
        host=settings.host,
        port=port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
