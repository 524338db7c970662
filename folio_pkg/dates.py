"""
Resolved date values for articles.
"""

import os
from datetime import date, datetime, timezone

DEFAULT_DATE_FORMAT = '%d %B %Y'
DEFAULT_TIME_FORMAT = '%H:%M'

DATE_FORMATS = ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M', '%Y-%m-%d', '%b %d, %Y']


def parse_date(value):
    """Parse a date value from front matter, a file name or a timestamp."""
    if isinstance(value, datetime):
        return value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000)
    elif isinstance(value, str):
        value = value.strip()
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            pass
    raise ValueError(f"Unable to parse date '{value}'")


def file_birth_time(path):
    """Creation time of a file, falling back to the earliest of ctime and mtime."""
    st = os.stat(path)
    birth = getattr(st, 'st_birthtime', None)
    if birth is None:
        birth = min(st.st_ctime, st.st_mtime)
    return datetime.fromtimestamp(birth)


def file_modified_time(path):
    return datetime.fromtimestamp(os.stat(path).st_mtime)


class ArticleDate:
    """A resolved date with the pieces templates and URL building need."""

    def __init__(self, value, date_format=DEFAULT_DATE_FORMAT, time_format=DEFAULT_TIME_FORMAT, source=None):
        self.dt = parse_date(value)
        self.date_format = date_format
        self.time_format = time_format
        # Where the value came from: 'front_matter', 'filename' or 'filesystem'
        self.source = source

    @property
    def year(self):
        return f"{self.dt.year:04d}"

    @property
    def month(self):
        return f"{self.dt.month:02d}"

    @property
    def day(self):
        return f"{self.dt.day:02d}"

    @property
    def ms(self):
        dt = self.dt
        if dt.tzinfo is None:
            return int(dt.timestamp() * 1000)
        return int(dt.astimezone(timezone.utc).timestamp() * 1000)

    @property
    def iso(self):
        return self.dt.isoformat()

    @property
    def disp_date(self):
        return self.dt.strftime(self.date_format)

    @property
    def disp_time(self):
        return self.dt.strftime(self.time_format)

    def as_dict(self):
        return {
            'year': self.year,
            'month': self.month,
            'day': self.day,
            'ms': self.ms,
            'iso': self.iso,
            'disp_date': self.disp_date,
            'disp_time': self.disp_time,
        }

    def __eq__(self, other):
        if isinstance(other, ArticleDate):
            return self.ms == other.ms
        return NotImplemented

    def __hash__(self):
        return hash(self.ms)

    def __repr__(self):
        return f"ArticleDate({self.iso!r}, source={self.source!r})"
