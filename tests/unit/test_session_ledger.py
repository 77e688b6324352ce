"""
Unit tests for the session history ledger
"""
from datetime import datetime, timedelta

import pytest

from src.agent.session_ledger import (
    SessionRecord,
    append,
    format_duration,
    parse_table,
    render_table,
)


def make_records(count, first=datetime(2025, 1, 1, 9, 0)):
    """`count` one-hour sessions a day apart, oldest first"""
    return [
        SessionRecord(first + timedelta(days=i), first + timedelta(days=i, hours=1))
        for i in range(count)
    ]


class TestFormatDuration:

    def test_zero_padded_fields(self):
        delta = timedelta(days=1, hours=2, minutes=3, seconds=4)

        assert format_duration(delta) == "01 Days | 02 Hours | 03 Minutes | 04 Seconds"

    def test_long_sessions_keep_all_digits(self):
        assert format_duration(timedelta(days=120)).startswith("120 Days")

    def test_record_duration_text(self):
        record = SessionRecord(datetime(2025, 1, 1, 9, 0), datetime(2025, 1, 1, 10, 30, 15))

        assert record.duration == timedelta(hours=1, minutes=30, seconds=15)
        assert record.duration_text == "00 Days | 01 Hours | 30 Minutes | 15 Seconds"


class TestParseTable:

    def test_reads_back_rendered_rows(self):
        records = make_records(3)

        assert parse_table(render_table(records)) == records

    def test_empty_input(self):
        assert parse_table("") == []
        assert parse_table(None) == []

    def test_skips_incomplete_and_bad_rows(self):
        table = (
            "<table><tr><th>Session Start</th><th>Session End</th><th>Session Duration</th></tr>"
            "<tr><td>2025-01-02 09:00</td><td>2025-01-02 10:00</td><td>x</td></tr>"
            "<tr><td>2025-01-03 09:00</td><td></td><td>x</td></tr>"
            "<tr><td>2025-01-04 09:00</td></tr>"
            "<tr><td>not a date</td><td>2025-01-05 10:00</td><td>x</td></tr>"
            "</table>"
        )

        records = parse_table(table)

        assert records == [SessionRecord(datetime(2025, 1, 2, 9, 0), datetime(2025, 1, 2, 10, 0))]

    def test_tolerates_markup_inside_cells(self):
        table = ('<table><tr><td style="x"><b>2025-01-02 09:00:00</b></td>'
                 '<td>2025-01-02 10:00:00</td><td>d</td></tr></table>')

        assert len(parse_table(table)) == 1


class TestAppend:

    def test_empty_ledger(self):
        record = make_records(1)[0]

        update = append(None, record)

        assert parse_table(update.table) == [record]
        assert update.last_end == record.end
        assert update.active is False

    def test_newest_first(self):
        existing = render_table(make_records(5))
        record = SessionRecord(datetime(2024, 12, 30, 9, 0), datetime(2024, 12, 30, 9, 5))

        entries = parse_table(append(existing, record).table)

        starts = [e.start for e in entries]
        assert starts == sorted(starts, reverse=True)
        assert entries[-1] == record

    def test_full_ledger_drops_single_oldest(self):
        records = make_records(30)
        existing = render_table(sorted(records, key=lambda r: r.start, reverse=True))
        new = SessionRecord(datetime(2025, 3, 1, 9, 0), datetime(2025, 3, 1, 11, 0))

        entries = parse_table(append(existing, new, capacity=30).table)

        assert len(entries) == 30
        assert entries[0] == new
        assert records[0] not in entries
        assert records[1] in entries

    def test_size_limit_drops_one_more_entry(self):
        records = make_records(5)
        new = SessionRecord(datetime(2025, 3, 1, 9, 0), datetime(2025, 3, 1, 11, 0))
        full_size = len(render_table(sorted(records + [new], key=lambda r: r.start, reverse=True)))

        update = append(render_table(records), new, capacity=30, size_limit=full_size)

        entries = parse_table(update.table)
        assert len(entries) == 5
        assert records[0] not in entries
        assert entries[0] == new

    def test_size_limit_is_single_pass(self):
        records = make_records(5)
        new = SessionRecord(datetime(2025, 3, 1, 9, 0), datetime(2025, 3, 1, 11, 0))

        update = append(render_table(records), new, capacity=30, size_limit=10)

        assert len(parse_table(update.table)) == 5

    def test_equal_start_keeps_prior_order(self):
        start = datetime(2025, 1, 1, 9, 0)
        first = SessionRecord(start, start + timedelta(minutes=10))
        second = SessionRecord(start, start + timedelta(minutes=20))

        entries = parse_table(append(render_table([first]), second).table)

        assert entries == [first, second]


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
