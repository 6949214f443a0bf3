from datetime import datetime

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class MetricsRecorder:
    """
    records fetch cycles and the current quota readings as Prometheus
    metrics. Only the latest values are kept; there is no history.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._fetch_duration: "Histogram" = Histogram(
            "usagebar_fetch_duration_seconds",
            "Duration of usage fetch cycles",
            ["source"],
            registry=registry,
        )
        self._fetch_errors: "Counter" = Counter(
            "usagebar_fetch_errors_total",
            "Total number of failed fetch cycles by source and error kind",
            ["source", "kind"],
            registry=registry,
        )
        self._last_fetch_success: "Gauge" = Gauge(
            "usagebar_last_fetch_success_timestamp_seconds",
            "Unix timestamp of the last successful fetch per source",
            ["source"],
            registry=registry,
        )
        self._utilization: "Gauge" = Gauge(
            "usagebar_utilization_percent",
            "Last reported quota utilization per window",
            ["window"],
            registry=registry,
        )
        self._reset_at: "Gauge" = Gauge(
            "usagebar_reset_timestamp_seconds",
            "Unix timestamp at which the quota window resets",
            ["window"],
            registry=registry,
        )

    def observe_fetch_duration(self, source: "str", duration_seconds: "float") -> "None":
        self._fetch_duration.labels(source=source).observe(duration_seconds)

    def inc_fetch_error(self, source: "str", kind: "str") -> "None":
        self._fetch_errors.labels(source=source, kind=kind).inc()

    def set_last_fetch_success(self, source: "str", timestamp: "float") -> "None":
        self._last_fetch_success.labels(source=source).set(timestamp)

    def set_window(
        self,
        window: "str",
        utilization: "float | None",
        resets_at: "datetime | None",
    ) -> "None":
        """
        updates the gauges of one window. Absent values drop the
        labelled series instead of exporting a misleading zero.
        """
        if utilization is None:
            self._remove(self._utilization, window)
        else:
            self._utilization.labels(window=window).set(utilization)

        if resets_at is None:
            self._remove(self._reset_at, window)
        else:
            self._reset_at.labels(window=window).set(resets_at.timestamp())

    @staticmethod
    def _remove(gauge: "Gauge", window: "str") -> "None":
        try:
            gauge.remove(window)
        except KeyError:
            pass
