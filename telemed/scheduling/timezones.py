import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

SLOT_KEY_FORMAT = '%Y-%m-%d %H:%M'


def clip_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def resolve_zone(timezone_name: str, fallback_offset_minutes: int) -> tzinfo:
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            'Time zone %s not available; falling back to fixed offset of %s minutes.',
            timezone_name,
            fallback_offset_minutes,
        )
        return timezone(timedelta(minutes=fallback_offset_minutes), timezone_name)


class CivilClock:
    """Converts between the configured civil zone and UTC at minute precision.

    Civil values are naive datetimes read as wall-clock time in the zone.
    UTC values are naive datetimes in UTC, which is how appointments are
    persisted. Aware inputs are accepted and converted.
    """

    def __init__(self, timezone_name: str, fallback_offset_minutes: int = 0) -> None:
        self.timezone_name = timezone_name
        self.zone = resolve_zone(timezone_name, fallback_offset_minutes)

    def as_civil(self, value: datetime) -> datetime:
        """Wall-clock reading of ``value`` in the civil zone; naive values pass through."""
        if value.tzinfo is not None:
            value = value.astimezone(self.zone).replace(tzinfo=None)
        return clip_to_minute(value)

    def to_utc(self, civil: datetime) -> datetime:
        local = self.as_civil(civil).replace(tzinfo=self.zone)
        return local.astimezone(timezone.utc).replace(tzinfo=None)

    def to_civil(self, utc: datetime) -> datetime:
        if utc.tzinfo is None:
            utc = utc.replace(tzinfo=timezone.utc)
        return clip_to_minute(utc.astimezone(self.zone)).replace(tzinfo=None)

    def slot_key(self, civil: datetime) -> str:
        return clip_to_minute(civil).strftime(SLOT_KEY_FORMAT)

    def slot_key_from_utc(self, utc: datetime) -> str:
        return self.slot_key(self.to_civil(utc))

    def day_range_utc(self, day: date) -> tuple[datetime, datetime]:
        day_start = datetime.combine(day, time(0, 0))
        return self.to_utc(day_start), self.to_utc(day_start + timedelta(days=1))

    def now_civil(self) -> datetime:
        return self.to_civil(datetime.now(timezone.utc))

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)
