import argparse

from usagebar.config import SOURCES, Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="usagebar",
        description="Claude usage quota indicator",
    )
    parser.add_argument(
        "--poll.interval",
        dest="poll_interval",
        type=int,
        default=60,
        help="Polling interval in seconds (default: 60)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--source",
        dest="source",
        default=None,
        choices=SOURCES,
        help="How usage is fetched (default: $USAGEBAR_SOURCE or api)",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default="",
        help="Serve Prometheus metrics on this address, e.g. :9186 (default: off)",
    )
    parser.add_argument(
        "--show-values",
        dest="show_values",
        action="store_true",
        help="Show percentages next to the indicator",
    )
    parser.add_argument(
        "--show-labels",
        dest="show_labels",
        action="store_true",
        help="Prefix percentages with S:/W: (needs --show-values)",
    )
    parser.add_argument(
        "--once",
        dest="once",
        action="store_true",
        help="Fetch once, print the usage and exit",
    )

    args = parser.parse_args(argv)
    if args.poll_interval <= 0:
        parser.error("--poll.interval must be positive")

    try:
        config = Config.from_env()
    except ValueError as exc:
        parser.error(str(exc))

    # also catches nan
    if not config.helper_timeout > 0:
        parser.error("USAGEBAR_HELPER_TIMEOUT must be positive")

    if args.source is not None:
        config.source = args.source
    elif config.source not in SOURCES:
        parser.error(f"unknown source {config.source!r} in USAGEBAR_SOURCE")

    config.poll_interval = args.poll_interval
    config.log_level = args.log_level
    config.listen_address = args.listen_address
    config.once = args.once
    # flags only switch preferences on, env may already have done so
    config.show_values = config.show_values or args.show_values
    config.show_labels = config.show_labels or args.show_labels
    return config
