from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta, timezone

_PERIOD_RE = re.compile(r"^(\d+)([dmy])$")


def parse_utc(value: str | datetime | None, *, strict: bool = False) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            if strict:
                raise
            return None
    if parsed.tzinfo is None:
        local_tz = datetime.now().astimezone().tzinfo
        parsed = parsed.replace(tzinfo=local_tz)
    return parsed.astimezone(timezone.utc)


def _subtract_months(value: datetime, months: int) -> datetime:
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


# "30d", "6m", "1y" -> start of that trailing period
def period_start(period: str, now: datetime) -> datetime:
    match = _PERIOD_RE.match((period or "").strip())
    if match is None:
        raise ValueError('invalid period format. Use format like "30d", "7d", "1y"')
    amount = int(match.group(1))
    unit = match.group(2)
    if unit == "d":
        return now - timedelta(days=amount)
    if unit == "m":
        return _subtract_months(now, amount)
    return _subtract_months(now, amount * 12)
