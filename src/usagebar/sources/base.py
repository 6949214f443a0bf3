from typing import Protocol

from usagebar.models import UsageReading


class UsageSource(Protocol):
    """
    UsageSource stands as a common protocol for the strategies that
    obtain a usage reading (direct API call, helper process + cache
    file).

    fetch makes exactly one attempt and raises a UsageFetchError
    subclass on failure; retrying is left to the poller.
    """

    @property
    def name(self) -> "str": ...

    async def fetch(self) -> "UsageReading": ...

    async def close(self) -> "None": ...
