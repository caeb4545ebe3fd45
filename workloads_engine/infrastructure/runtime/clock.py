"""Clock implementation."""

from datetime import datetime, timezone

from workloads_engine.domain.ports import ClockPort
from workloads_engine.domain.types import Timestamp


class SystemClock(ClockPort):
    """System clock implementation."""

    def now(self) -> Timestamp:
        """Get current timestamp."""
        return datetime.now(timezone.utc)
