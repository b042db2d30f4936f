"""
Alarm Schedule - 提醒时间计算

Pure helpers shared by the store's alarm operations and the "today" query.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from noto.core.timeutil import ensure_utc
from noto.models.state import Alarm, AlarmRepeat, AlarmStatus, AppState, EntityKind

MAX_SNOOZE_MINUTES = 1440

_REPEAT_PERIODS = {
    AlarmRepeat.DAILY: timedelta(days=1),
    AlarmRepeat.WEEKLY: timedelta(weeks=1),
}


def compute_next_repeat(at: datetime, repeat: AlarmRepeat) -> Optional[datetime]:
    """下一次重复时间，不重复时返回 None"""
    period = _REPEAT_PERIODS.get(AlarmRepeat(repeat))
    if period is None:
        return None
    return ensure_utc(at) + period


def snooze_until(now: datetime, minutes: int) -> datetime:
    """延后提醒的目标时间

    Raises:
        ValueError: minutes 不在 1..MAX_SNOOZE_MINUTES 范围内
    """
    if isinstance(minutes, bool) or not isinstance(minutes, int) or not 1 <= minutes <= MAX_SNOOZE_MINUTES:
        raise ValueError(f"Snooze minutes must be an integer in 1..{MAX_SNOOZE_MINUTES}, got {minutes!r}")
    return ensure_utc(now) + timedelta(minutes=minutes)


@dataclass(frozen=True)
class AlarmEntry:
    """An alarm together with the entity it is attached to."""

    kind: EntityKind
    entity_id: str
    title: str
    alarm: Alarm

    @property
    def at(self) -> datetime:
        return self.alarm.at


@dataclass
class AlarmBuckets:
    """Today dashboard 分组结果"""

    missed: list[AlarmEntry] = field(default_factory=list)
    today: list[AlarmEntry] = field(default_factory=list)
    upcoming: list[AlarmEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.missed) + len(self.today) + len(self.upcoming)


def iter_alarms(state: AppState, include_archived: bool = False) -> list[AlarmEntry]:
    entries: list[AlarmEntry] = []
    for item in state.checklist:
        if item.alarm and (include_archived or not item.archived):
            entries.append(AlarmEntry(EntityKind.CHECKLIST, item.id, item.title, item.alarm))
    for note in state.notes:
        if note.alarm and (include_archived or not note.archived):
            entries.append(AlarmEntry(EntityKind.NOTE, note.id, note.title, note.alarm))
    return entries


def collect_alarms(state: AppState, now: datetime, tz: Optional[tzinfo] = None) -> AlarmBuckets:
    """Group the state's alarms for the today dashboard.

    - missed: still scheduled but already past ``now``
    - today: on ``now``'s calendar day (in ``tz``, UTC by default), not dismissed
    - upcoming: after today, still scheduled

    Args:
        state: 当前状态
        now: 参考时间
        tz: 计算"今天"使用的时区

    Returns:
        AlarmBuckets，每组按 at 升序
    """
    now = ensure_utc(now)
    local_now = now.astimezone(tz) if tz else now
    day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)

    buckets = AlarmBuckets()
    for entry in iter_alarms(state):
        alarm = entry.alarm
        if alarm.status == AlarmStatus.SCHEDULED and alarm.at < now:
            buckets.missed.append(entry)
        elif day_start <= alarm.at < day_end:
            if alarm.status != AlarmStatus.DISMISSED:
                buckets.today.append(entry)
        elif alarm.at >= day_end and alarm.status == AlarmStatus.SCHEDULED:
            buckets.upcoming.append(entry)

    for bucket in (buckets.missed, buckets.today, buckets.upcoming):
        bucket.sort(key=lambda e: e.at)
    return buckets


__all__ = [
    "MAX_SNOOZE_MINUTES",
    "AlarmBuckets",
    "AlarmEntry",
    "collect_alarms",
    "compute_next_repeat",
    "iter_alarms",
    "snooze_until",
]
