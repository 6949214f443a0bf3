import asyncio
import signal
import sys

import structlog
from prometheus_client import start_http_server

from usagebar.cli import parse_args
from usagebar.config import Config
from usagebar.credentials.file import default_credential_source
from usagebar.display import build_detail_view, build_indicator, format_detail_row
from usagebar.logging import setup_logging
from usagebar.metrics import MetricsRecorder
from usagebar.models import UsageSnapshot
from usagebar.poller import PollingController, utcnow
from usagebar.sources.api import ApiUsageSource
from usagebar.sources.base import UsageSource
from usagebar.sources.helper import HelperUsageSource

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '127.0.0.1:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def build_source(config: "Config") -> "UsageSource":
    if config.source == "helper":
        return HelperUsageSource(config.claude_dir, timeout=config.helper_timeout)

    return ApiUsageSource(
        default_credential_source(config.claude_dir),
        timeout=config.request_timeout,
    )


class ConsolePresenter:
    """
    stands in for the status bar: logs the indicator whenever it
    changes, along with the detail rows.
    """

    def __init__(self, config: "Config") -> "None":
        self._preferences = config.preferences
        self._last_title: "str | None" = None

    def __call__(self, snapshot: "UsageSnapshot") -> "None":
        now = utcnow()
        indicator = build_indicator(snapshot, self._preferences, now)
        if snapshot.is_loading or indicator.title == self._last_title:
            return

        self._last_title = indicator.title
        view = build_detail_view(snapshot, now)
        logger.info(
            "indicator_updated",
            title=indicator.title,
            tier=indicator.tier.value,
            error=view.error,
            rows=[format_detail_row(row) for row in view.rows],
        )


async def _run_once(controller: "PollingController") -> "int":
    await controller.refresh()
    await controller.close()

    view = build_detail_view(controller.snapshot, utcnow())
    if view.error is not None:
        print(f"Error: {view.error}")
    for row in view.rows:
        print(format_detail_row(row))
    return 1 if view.error is not None else 0


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level)

    metrics = None
    if config.metrics_enabled:
        metrics = MetricsRecorder()
        host, port = _parse_listen_address(config.listen_address)
        start_http_server(port, addr=host)
        logger.info("metrics_server_started", host=host, port=port)

    async def _run() -> "int":
        controller = PollingController(build_source(config), metrics=metrics)
        if config.once:
            return await _run_once(controller)

        controller.subscribe(ConsolePresenter(config))

        loop = asyncio.get_running_loop()
        stopped = asyncio.Event()

        def _stop() -> "None":
            controller.stop()
            stopped.set()

        # for SIGINT and SIGTERM, stop polling gracefully;
        # SIGUSR1 triggers a refresh like opening the popover does
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _stop)
        loop.add_signal_handler(signal.SIGUSR1, controller.manual_refresh)

        try:
            await controller.start(config.poll_interval)
            await stopped.wait()
        finally:
            logger.info("shutting_down")
            await controller.close()
            logger.info("shutdown_complete")
        return 0

    sys.exit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
