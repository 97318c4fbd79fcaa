from datetime import datetime

MINUTES_PER_DAY = 24 * 60

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def parse_time_string(time_str: str) -> int:
    """Parses time strings like '8pm', '8:30pm', '20:00' into a minute-of-day."""
    formats = ["%I%p", "%I:%M%p", "%H:%M", "%H:%M:%S"]
    time_str = time_str.lower().replace(" ", "")
    for fmt in formats:
        try:
            parsed_time = datetime.strptime(time_str, fmt).time()
            return parsed_time.hour * 60 + parsed_time.minute
        except ValueError:
            continue
    raise ValueError(f"Could not parse time: {time_str}")


def format_minute_of_day(minute: int) -> str:
    """Formats a minute-of-day as 'HH:MM'."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def minute_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute


def weekday_name(now: datetime) -> str:
    return WEEKDAYS[now.weekday()]


def previous_weekday(day: str) -> str:
    return WEEKDAYS[(WEEKDAYS.index(day) - 1) % 7]


def format_duration_seconds(seconds: int) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 30m' or '45m').
    """
    minutes = seconds // 60
    if minutes == 0 and seconds > 0:  # Handle durations less than a minute
        return "<1m"
    elif minutes <= 60:
        return f"{minutes}m"
    else:
        hours = minutes // 60
        remaining_minutes = minutes % 60
        return f"{hours}h {remaining_minutes}m"
