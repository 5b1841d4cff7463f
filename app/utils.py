import logging
import os
import re
import sys
from datetime import datetime, timezone

import structlog


# Custom logging formatter to support colors
class ColoredFormatter(logging.Formatter):
    # Define color codes
    COLORS = {
        'DEBUG': '\033[94m',   # Blue
        'INFO': '\033[92m',    # Green
        'WARNING': '\033[93m', # Yellow
        'ERROR': '\033[91m',   # Red
        'CRITICAL': '\033[95m' # Magenta
    }
    RESET = '\033[0m'  # Reset color

    def format(self, record):
        # Add color to the log level name
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        return super().format(record)


# Filter to remove date from http access logs
class FilterRemoveDateFromWerkzeugLogs(logging.Filter):
    # '192.168.0.102 - - [30/Jun/2024 01:14:03] "%s" %s %s' -> '192.168.0.102 - "%s" %s %s'
    pattern: re.Pattern = re.compile(r' - - \[.+?] "')

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.pattern.sub(' - "', record.msg)
        return True


def configure_logging(level=None):
    """
    Configure stdlib logging and structlog for the whole process.

    Logs go to stderr so stdout stays free for command output. LOG_LEVEL
    selects the level and LOG_FORMAT=json switches to JSON lines.
    """
    level = level or os.environ.get('LOG_LEVEL', 'INFO')

    formatter = ColoredFormatter(
        '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Apply filter to hide date from http access logs
    logging.getLogger('werkzeug').addFilter(FilterRemoveDateFromWerkzeugLogs())
    logging.getLogger('apscheduler').setLevel(logging.WARNING)


ISO_FRACTION = re.compile(r"\.([0-9]+)(?=[+-][0-9]{2}:[0-9]{2}$|$)")


def now_utc():
    """Returns current datetime in UTC (aware)"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """
    Ensure a datetime object is aware and in UTC.
    Handles ISO strings (including a trailing 'Z' and bare dates), None, and naive datetimes.
    """
    if dt is None:
        return None

    # Handle strings (ISO format)
    if isinstance(dt, str):
        value = dt.strip().replace('Z', '+00:00')
        # fromisoformat before 3.11 only takes 3 or 6 fraction digits
        value = ISO_FRACTION.sub(lambda m: '.' + (m.group(1) + '00000')[:6], value)
        try:
            dt = datetime.fromisoformat(value)
        except (ValueError, TypeError, AttributeError):
            return None

    if not hasattr(dt, 'tzinfo'):
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_iso(dt):
    """ISO 8601 UTC with millisecond precision, e.g. 2026-01-15T00:00:00.000Z"""
    dt = ensure_utc(dt)
    if dt is None:
        return None
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f"{dt.microsecond // 1000:03d}Z"


def hours_since(value, now=None):
    """Hours elapsed between an ISO timestamp (or datetime) and now, None if unparseable"""
    then = ensure_utc(value)
    if then is None:
        return None
    now = ensure_utc(now) or now_utc()
    return (now - then).total_seconds() / 3600


def is_newer(candidate, reference):
    """
    True if the ISO timestamp `candidate` is strictly later than `reference`.

    When either side does not parse, falls back to plain string comparison,
    the same ordering SQL MAX(modified) uses for the store watermark. Both
    orderings agree as long as the feed keeps one timestamp format.
    """
    if reference is None:
        return True
    if candidate is None:
        return False
    a, b = ensure_utc(candidate), ensure_utc(reference)
    if a is None or b is None:
        return candidate > reference
    return a > b


def latest_timestamp(values, default=None):
    """Return the latest of several ISO timestamps, keeping the original string"""
    latest = default
    for value in values:
        if value and is_newer(value, latest):
            latest = value
    return latest


def year_month(dt):
    return f"{dt.year:04d}-{dt.month:02d}"


def previous_month(dt):
    """First day of the calendar month before `dt`"""
    if dt.month == 1:
        return dt.replace(year=dt.year - 1, month=12, day=1)
    return dt.replace(month=dt.month - 1, day=1)


def truncate_text(text, length, marker='...'):
    if text is None:
        return None
    if len(text) > length:
        return text[:length] + marker
    return text


def dedupe(values):
    """Drop duplicates and empty values, preserving first-seen order"""
    seen = set()
    result = []
    for value in values or []:
        if value is None or value == '' or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result

