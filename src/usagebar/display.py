from dataclasses import dataclass
from datetime import datetime

from usagebar.models import (
    DisplayPreferences,
    IndicatorTier,
    UsageSnapshot,
    WindowStatus,
)
from usagebar.status import (
    SESSION_WINDOW,
    WEEKLY_WINDOW,
    indicator_tier,
    time_remaining,
    window_status,
)

ICONS: "dict[IndicatorTier, str]" = {
    IndicatorTier.RED: "🔴",
    IndicatorTier.ORANGE: "🟠",
    IndicatorTier.CAUTION: "🟡",
    IndicatorTier.UNKNOWN: "⚪",
    IndicatorTier.GREEN: "🟢",
    IndicatorTier.WARNING: "⚠️",
}

SESSION_TITLE = "Session (5hr)"
WEEKLY_TITLE = "Weekly (7d)"


@dataclass(frozen=True, slots=True)
class Indicator:
    """
    Indicator is what the status bar button shows: the tier that
    selects the glyph and the full title text.
    """

    tier: "IndicatorTier"
    icon: "str"
    title: "str"


@dataclass(frozen=True, slots=True)
class DetailRow:
    title: "str"
    usage: "float | None"
    status: "WindowStatus"
    resets_in: "str"


@dataclass(frozen=True, slots=True)
class DetailView:
    """
    DetailView backs the popover. rows are always present so that the
    last known values stay visible underneath an error banner.
    """

    error: "str | None"
    rows: "tuple[DetailRow, ...]"
    is_loading: "bool"


def session_status(snapshot: "UsageSnapshot", now: "datetime") -> "WindowStatus":
    return window_status(
        snapshot.session_usage, snapshot.session_reset_at, now, SESSION_WINDOW
    )


def weekly_status(snapshot: "UsageSnapshot", now: "datetime") -> "WindowStatus":
    return window_status(
        snapshot.weekly_usage, snapshot.weekly_reset_at, now, WEEKLY_WINDOW
    )


def build_indicator(
    snapshot: "UsageSnapshot",
    preferences: "DisplayPreferences",
    now: "datetime",
) -> "Indicator":
    """
    builds the top-level indicator. When the last cycle failed the
    glyph switches to the warning sign, but the last known values are
    still rendered according to the preferences.
    """
    if snapshot.last_error is not None:
        tier = IndicatorTier.WARNING
    else:
        tier = indicator_tier(
            session_status(snapshot, now), weekly_status(snapshot, now)
        )
    icon = ICONS[tier]

    session = snapshot.session_usage
    weekly = snapshot.weekly_usage

    if session is not None and weekly is not None:
        # percentages are truncated, not rounded
        if preferences.labels_visible:
            title = f"{icon} S: {int(session)}% · W: {int(weekly)}%"
        elif preferences.show_values:
            title = f"{icon} {int(session)}% · {int(weekly)}%"
        else:
            title = icon
    elif snapshot.is_loading:
        if preferences.labels_visible:
            title = f"{icon} S: ... - W: ..."
        elif preferences.show_values:
            title = f"{icon} ..."
        else:
            title = icon
    else:
        title = icon

    return Indicator(tier=tier, icon=icon, title=title)


def build_detail_view(snapshot: "UsageSnapshot", now: "datetime") -> "DetailView":
    rows = (
        DetailRow(
            title=SESSION_TITLE,
            usage=snapshot.session_usage,
            status=session_status(snapshot, now),
            resets_in=time_remaining(snapshot.session_reset_at, now),
        ),
        DetailRow(
            title=WEEKLY_TITLE,
            usage=snapshot.weekly_usage,
            status=weekly_status(snapshot, now),
            resets_in=time_remaining(snapshot.weekly_reset_at, now),
        ),
    )
    return DetailView(
        error=snapshot.last_error,
        rows=rows,
        is_loading=snapshot.is_loading,
    )


def format_detail_row(row: "DetailRow") -> "str":
    usage = f"{int(row.usage)}%" if row.usage is not None else "--"
    return f"{row.title}: {usage} [{row.status.value}] resets in {row.resets_in}"
