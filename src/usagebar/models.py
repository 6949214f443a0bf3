from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class WindowStatus(str, Enum):
    """
    traffic-light status of a single quota window.
    """

    UNKNOWN = "unknown"
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"


class IndicatorTier(str, Enum):
    """
    IndicatorTier is the combined signal shown at the top-level
    indicator. CAUTION means the session window is off track while
    the weekly window is fine; WARNING replaces everything when the
    last fetch failed.
    """

    RED = "red"
    ORANGE = "orange"
    CAUTION = "caution"
    UNKNOWN = "unknown"
    GREEN = "green"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class UsageWindow:
    """
    UsageWindow represents one quota window's last known reading.
    """

    # percentage already normalized to 0..100 upstream
    utilization: "float | None" = None
    # timezone-aware, UTC
    resets_at: "datetime | None" = None


@dataclass(frozen=True, slots=True)
class UsageReading:
    """
    UsageReading is the decoded usage payload, either from the
    remote endpoint or from the helper's cache file.
    """

    five_hour: "UsageWindow | None" = None
    seven_day: "UsageWindow | None" = None
    error: "str | None" = None
    # only set by the helper script
    fetched_at: "datetime | None" = None


@dataclass(slots=True)
class UsageSnapshot:
    """
    UsageSnapshot is the process-wide state published to the
    presentation layer. Owned and mutated by the PollingController only.
    """

    session_usage: "float | None" = None
    weekly_usage: "float | None" = None
    session_reset_at: "datetime | None" = None
    weekly_reset_at: "datetime | None" = None
    is_loading: "bool" = False
    last_error: "str | None" = None
    # local time of the last successful cycle
    last_updated: "datetime | None" = None
    fetched_at: "datetime | None" = None


@dataclass(frozen=True, slots=True)
class DisplayPreferences:
    show_values: "bool" = False
    show_labels: "bool" = False

    @property
    def labels_visible(self) -> "bool":
        # labels only make sense next to values
        return self.show_values and self.show_labels
