"""
Session Ledger - Bounded history of remote sessions kept in a WYSIWYG custom field
The field holds an HTML table, newest session first
"""
import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 30
DEFAULT_SIZE_LIMIT = 190000

COLUMNS = ('Session Start', 'Session End', 'Session Duration')
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'
# Older rows and the start/end fields use minute precision
TIMESTAMP_FORMATS = (TIMESTAMP_FORMAT, '%Y-%m-%d %H:%M')

ROW_PATTERN = re.compile(r'<tr[^>]*>(.*?)</tr>', re.IGNORECASE | re.DOTALL)
CELL_PATTERN = re.compile(r'<td[^>]*>(.*?)</td>', re.IGNORECASE | re.DOTALL)
TAG_PATTERN = re.compile(r'<[^>]+>')


def format_duration(delta):
    """Render a timedelta as 'DD Days | HH Hours | MM Minutes | SS Seconds'"""
    total = max(int(delta.total_seconds()), 0)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{days:02d} Days | {hours:02d} Hours | {minutes:02d} Minutes | {seconds:02d} Seconds"


def parse_timestamp(value):
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


@dataclass(frozen=True)
class SessionRecord:
    start: datetime
    end: datetime

    @property
    def duration(self):
        return self.end - self.start

    @property
    def duration_text(self):
        return format_duration(self.duration)


@dataclass(frozen=True)
class LedgerUpdate:
    """What the caller writes back: the table, the last end time and the active flag"""
    table: str
    last_end: datetime
    active: bool = False


def render_table(records):
    header = ''.join(f'<th>{name}</th>' for name in COLUMNS)
    rows = []
    for record in records:
        cells = (
            record.start.strftime(TIMESTAMP_FORMAT),
            record.end.strftime(TIMESTAMP_FORMAT),
            record.duration_text,
        )
        rows.append('<tr>' + ''.join(f'<td>{html.escape(c)}</td>' for c in cells) + '</tr>')
    return f"<table><thead><tr>{header}</tr></thead><tbody>{''.join(rows)}</tbody></table>"


def parse_table(text):
    """
    Rebuild session records from a rendered table.
    Header rows, rows with missing cells and rows with unreadable
    timestamps are skipped.
    """
    records = []
    if not text:
        return records

    for row in ROW_PATTERN.findall(text):
        cells = [html.unescape(TAG_PATTERN.sub('', c)).strip() for c in CELL_PATTERN.findall(row)]
        if not cells:
            continue
        if len(cells) < len(COLUMNS) or not cells[0] or not cells[1]:
            logger.debug(f"Skipping incomplete ledger row: {cells}")
            continue
        start = parse_timestamp(cells[0])
        end = parse_timestamp(cells[1])
        if start is None or end is None:
            logger.debug(f"Skipping ledger row with bad timestamps: {cells}")
            continue
        records.append(SessionRecord(start, end))
    return records


def append(existing, record, capacity=DEFAULT_CAPACITY, size_limit=DEFAULT_SIZE_LIMIT):
    """
    Add a finished session to the ledger and return the new snapshot.

    Entries are sorted newest first (stable, so equal start times keep their
    prior order), cut to `capacity`, then if the rendered table is still at
    or over `size_limit` characters the single oldest entry is dropped once.
    """
    entries = parse_table(existing) if existing else []
    entries.append(record)
    entries.sort(key=lambda r: r.start, reverse=True)

    if len(entries) > capacity:
        logger.info(f"Ledger over capacity ({len(entries)}/{capacity}), dropping oldest entries")
        entries = entries[:capacity]

    table = render_table(entries)
    if len(table) >= size_limit and entries:
        logger.info(f"Ledger size {len(table)} reached limit {size_limit}, dropping oldest entry")
        entries = entries[:-1]
        table = render_table(entries)
        if len(table) >= size_limit:
            logger.warning(f"Ledger still {len(table)} characters after trimming")

    return LedgerUpdate(table=table, last_end=record.end, active=False)
