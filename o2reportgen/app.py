"""Server entry point."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import os
import signal
from collections.abc import Sequence

from aiohttp import web

from o2reportgen.cli import cli
from o2reportgen.config import Config, get_chrome_launch_options, get_config
from o2reportgen.router import create_app

log = logging.getLogger(__name__)

ACCESS_LOG_FORMAT = (
    '%a "%r" %s %b "%{Content-Length}i" "%{Referer}i" "%{User-Agent}i" %T'
)
_SHUTDOWN_SIGNALS = ("SIGQUIT", "SIGTERM", "SIGINT", "SIGBREAK")


def server_address(config: Config) -> tuple[str, int]:
    """Host and port to listen on; all IPv6 interfaces when IPv6 is enabled."""
    if config.http.ipv6_enabled:
        return "::", config.http.port
    host = config.http.addr or "0.0.0.0"
    try:
        ipaddress.ip_address(host)
    except ValueError:
        raise ValueError(f"invalid socket address host {host!r}") from None
    return host, config.http.port


async def _wait_for_shutdown_signal() -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    installed = []

    def received(name: str) -> None:
        log.info("%s received", name)
        stop.set()

    for name in _SHUTDOWN_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            loop.add_signal_handler(signum, received, name)
            installed.append(signum)
        except (NotImplementedError, RuntimeError):
            signal.signal(
                signum,
                lambda _sig, _frame, name=name: loop.call_soon_threadsafe(received, name),
            )
    try:
        await stop.wait()
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


async def run_server(config: Config) -> None:
    """Serve the API until a shutdown signal arrives, then stop gracefully."""
    host, port = server_address(config)
    runner = web.AppRunner(create_app(), access_log_format=ACCESS_LOG_FORMAT)
    await runner.setup()
    try:
        site = web.TCPSite(runner, host, port)
        shown = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
        log.info("starting HTTP server at: %s", shown)
        await site.start()
        await _wait_for_shutdown_signal()
    finally:
        await runner.cleanup()
    log.info("HTTP server stopped")


def main(argv: Sequence[str] | None = None) -> int:
    """Run a CLI subcommand if given, otherwise start the report server."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if cli(argv):
        return 0

    get_chrome_launch_options()
    log.info("starting o2 chrome server")

    config = get_config()
    if not config.auth.user_email or not config.auth.user_password:
        raise RuntimeError("Report User email and password must be specified")

    asyncio.run(run_server(config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())