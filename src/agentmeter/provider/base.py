from typing import Protocol, Sequence

from agentmeter.models import Granularity, RawEntry


class UsageProvider(Protocol):
    """
    UsageProvider stands as a common protocol that all agent
    usage sources must satisfy.

    Providers read their source, validate its wire shape and return
    raw entries of their declared granularity. A source that cannot
    be read raises SourceUnavailableError instead of returning
    partial data.
    """

    @property
    def name(self) -> "str": ...

    @property
    def granularity(self) -> "Granularity": ...

    async def fetch(self) -> "Sequence[RawEntry]": ...
