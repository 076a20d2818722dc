"""Operational commands for the storefront service.

``python -m storefront.cli seed``
    Create the tables and load the demo catalog and admin account.
``python -m storefront.cli serve``
    Run the API under uvicorn.
``python -m storefront.cli wait``
    Poll a running instance's ``/health`` endpoint until it answers, which
    is handy in deploy scripts that must not race a cold start.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional

import httpx
import uvicorn

from .config import Settings, configure_logging
from .db import DEMO_ADMIN_EMAIL, create_db_engine, create_db_and_tables, seed_data

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_HEALTH_PATH = "/health"


class ServiceUnavailableError(RuntimeError):
    """Raised when a service never becomes ready within a deadline."""


def wait_for_service(
    base_url: str,
    *,
    health_path: str = DEFAULT_HEALTH_PATH,
    timeout: float = 60.0,
    poll_interval: float = 1.0,
    transport: httpx.BaseTransport | None = None,
) -> None:
    """Block until the service responds with a healthy status.

    Raises
    ------
    ServiceUnavailableError
        If the deadline expires before a healthy response is observed.
    """

    target_url = f"{base_url.rstrip('/')}/{health_path.lstrip('/')}"
    deadline = time.monotonic() + timeout
    last_error: Exception | None = None

    with httpx.Client(timeout=httpx.Timeout(timeout), transport=transport) as client:
        while time.monotonic() < deadline:
            try:
                response = client.get(target_url)
            except httpx.HTTPError as exc:
                last_error = exc
            else:
                if response.status_code == 200:
                    return
                last_error = RuntimeError(f"Received unexpected status {response.status_code} from {target_url}")
            time.sleep(poll_interval)

    raise ServiceUnavailableError(f"Service at {target_url} did not become ready within {timeout} seconds") from last_error


def seed(settings: Settings) -> bool:
    engine = create_db_engine(settings.database_url)
    try:
        create_db_and_tables(engine)
        return seed_data(engine, bcrypt_rounds=settings.bcrypt_rounds)
    finally:
        engine.dispose()


def serve(host: str, port: int, reload: bool = False) -> None:
    uvicorn.run("storefront.main:app", host=host, port=port, reload=reload)


def parse_cli_arguments(arguments: list[str]) -> argparse.Namespace:
    """Parse command-line arguments for the module CLI."""

    parser = argparse.ArgumentParser(prog="storefront", description="Storefront service commands.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("seed", help="Create tables and load demo data.")

    serve_parser = commands.add_parser("serve", help="Run the API with uvicorn.")
    serve_parser.add_argument("--host", default=DEFAULT_HOST, help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Port to bind.")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes.")

    wait_parser = commands.add_parser("wait", help="Wait for a running instance to report healthy.")
    wait_parser.add_argument("--base-url", default=f"http://{DEFAULT_HOST}:{DEFAULT_PORT}", help="Base URL of the API.")
    wait_parser.add_argument("--health-path", default=DEFAULT_HEALTH_PATH, help="Endpoint used to probe readiness.")
    wait_parser.add_argument("--timeout", type=float, default=60.0, help="Maximum seconds to wait.")
    wait_parser.add_argument("--poll-interval", type=float, default=1.0, help="Delay between probes.")

    return parser.parse_args(arguments)


def main(arguments: Optional[list[str]] = None, settings: Optional[Settings] = None) -> int:
    """Entry-point used when the module is executed as a script."""

    if arguments is None:
        arguments = sys.argv[1:]

    options = parse_cli_arguments(arguments)
    settings = settings or Settings.from_env()
    configure_logging(settings)

    if options.command == "seed":
        if seed(settings):
            print(f"Seeded demo data; admin login is {DEMO_ADMIN_EMAIL}")
        else:
            print("Database already has users; nothing seeded")
        return 0
    if options.command == "serve":
        serve(options.host, options.port, reload=options.reload)
        return 0

    try:
        wait_for_service(
            options.base_url,
            health_path=options.health_path,
            timeout=options.timeout,
            poll_interval=options.poll_interval,
        )
    except ServiceUnavailableError as exc:
        print(exc, file=sys.stderr)
        return 1
    logger.info("Service at %s is healthy", options.base_url)
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual invocation.
    raise SystemExit(main())
