from datetime import datetime, timedelta

from usagebar.models import IndicatorTier, WindowStatus

SESSION_WINDOW = timedelta(hours=5)
WEEKLY_WINDOW = timedelta(days=7)

PLACEHOLDER = "--"


def window_status(
    utilization: "float | None",
    resets_at: "datetime | None",
    now: "datetime",
    window: "timedelta",
) -> "WindowStatus":
    """
    derives the traffic-light status of one quota window.
     - no reading: UNKNOWN
     - quota exhausted: RED, regardless of timing
     - no reset time: GREEN, there is nothing to compare against
     - otherwise ORANGE when more of the quota is used than of
     the window has elapsed, else GREEN.
    """
    if utilization is None:
        return WindowStatus.UNKNOWN

    if utilization >= 100:
        return WindowStatus.RED

    if resets_at is None:
        return WindowStatus.GREEN

    duration = window.total_seconds()
    time_until_reset = (resets_at - now).total_seconds()
    time_elapsed = duration - time_until_reset
    time_percentage = max(0.0, min(100.0, time_elapsed / duration * 100))

    if utilization > time_percentage:
        return WindowStatus.ORANGE

    return WindowStatus.GREEN


def time_remaining(resets_at: "datetime | None", now: "datetime") -> "str":
    """
    formats the time left until reset as "2d 3h", "4h 12m" or "7m".
    All divisions truncate.
    """
    if resets_at is None:
        return PLACEHOLDER

    interval = (resets_at - now).total_seconds()
    if interval <= 0:
        return "now"

    total = int(interval)
    hours = total // 3600
    minutes = (total % 3600) // 60

    if hours >= 24:
        return f"{hours // 24}d {hours % 24}h"
    if hours >= 1:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def indicator_tier(
    session: "WindowStatus",
    weekly: "WindowStatus",
) -> "IndicatorTier":
    """
    combines the two window statuses by visual priority. A weekly
    window off track outranks a session window off track.
    """
    if WindowStatus.RED in (session, weekly):
        return IndicatorTier.RED
    if weekly is WindowStatus.ORANGE:
        return IndicatorTier.ORANGE
    if session is WindowStatus.ORANGE:
        return IndicatorTier.CAUTION
    if WindowStatus.UNKNOWN in (session, weekly):
        return IndicatorTier.UNKNOWN
    return IndicatorTier.GREEN
