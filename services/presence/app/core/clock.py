from datetime import datetime, timezone


class Clock:
    """Wall clock used for session timestamps and durations.

    All values are timezone-aware UTC so they survive a round trip through
    the database and a process restart.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
