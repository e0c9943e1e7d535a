"""Scout engagement statistics for a single candidate.

Every counter is windowed by the timestamp of its own event: ``received`` by
``sent_at``, ``opened`` by ``read_at``, ``replied`` by ``replied_at`` and
``applications`` by ``created_at``. The snapshot therefore answers "how much
engagement happened in the last N days", not "what became of the messages
sent in the last N days". A message sent 40 days ago and opened 3 days ago
adds to ``opened`` in the 7-day window but not to ``received``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

SEVEN_DAYS = timedelta(days=7)
THIRTY_DAYS = timedelta(days=30)
WINDOW_NAMES = ("7days", "30days", "total")


@dataclass(slots=True)
class ScoutMessageEvent:
    sent_at: datetime | None
    read_at: datetime | None = None
    replied_at: datetime | None = None


@dataclass(slots=True)
class ApplicationEvent:
    created_at: datetime | None


@dataclass(slots=True)
class ScoutStatsWindow:
    received: int = 0
    opened: int = 0
    replied: int = 0
    applications: int = 0

    @property
    def opened_rate(self) -> int:
        return percentage(self.opened, self.received)

    @property
    def replied_rate(self) -> int:
        return percentage(self.replied, self.received)

    @property
    def application_rate(self) -> int:
        return percentage(self.applications, self.received)


@dataclass(slots=True)
class ScoutStatsSnapshot:
    candidate_id: str
    computed_at: datetime
    seven_days: ScoutStatsWindow = field(default_factory=ScoutStatsWindow)
    thirty_days: ScoutStatsWindow = field(default_factory=ScoutStatsWindow)
    total: ScoutStatsWindow = field(default_factory=ScoutStatsWindow)

    def window(self, name: str) -> ScoutStatsWindow:
        windows = {"7days": self.seven_days, "30days": self.thirty_days, "total": self.total}
        return windows[name]


def aggregate_scout_stats(
    candidate_id: str,
    now: datetime,
    messages: Iterable[ScoutMessageEvent],
    applications: Iterable[ApplicationEvent],
) -> ScoutStatsSnapshot:
    now = _as_aware(now)
    seven_days_ago = now - SEVEN_DAYS
    thirty_days_ago = now - THIRTY_DAYS
    snapshot = ScoutStatsSnapshot(candidate_id=candidate_id, computed_at=now)

    def buckets(occurred_at: datetime | None) -> list[ScoutStatsWindow]:
        selected = [snapshot.total]
        if occurred_at is None:
            return selected
        occurred_at = _as_aware(occurred_at)
        if occurred_at >= thirty_days_ago:
            selected.append(snapshot.thirty_days)
        if occurred_at >= seven_days_ago:
            selected.append(snapshot.seven_days)
        return selected

    for message in messages:
        for bucket in buckets(message.sent_at):
            bucket.received += 1
        if message.read_at is not None:
            for bucket in buckets(message.read_at):
                bucket.opened += 1
        if message.replied_at is not None:
            for bucket in buckets(message.replied_at):
                bucket.replied += 1

    for application in applications:
        for bucket in buckets(application.created_at):
            bucket.applications += 1

    return snapshot


def percentage(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_count_with_rate(part: int, whole: int) -> str:
    if whole <= 0:
        return str(part)
    return f"{part}（{percentage(part, whole)}%）"


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
