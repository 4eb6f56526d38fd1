"""Tests for the request record and host parsing."""

from datetime import datetime, timedelta, timezone

from accesslog.record import RequestRecord, parse_host


def _record(started: datetime, completed: datetime | None) -> RequestRecord:
    return RequestRecord(
        host="10.0.0.1",
        request="GET / HTTP/1.1",
        request_started=started,
        request_completed=completed,
    )


class TestParseHost:
    def test_strips_port(self):
        assert parse_host("203.0.113.5:54321") == "203.0.113.5"

    def test_no_colon_returns_whole_address(self):
        assert parse_host("203.0.113.5") == "203.0.113.5"

    def test_ipv6_with_port_cut_at_last_colon(self):
        assert parse_host("::1:8080") == "::1"

    def test_empty_address(self):
        assert parse_host("") == ""


class TestStart:
    def test_defaults(self):
        rec = RequestRecord.start("10.0.0.1:5000", "GET", "/x?y=1", "HTTP/1.1")
        assert rec.host == "10.0.0.1"
        assert rec.indent == "-"
        assert rec.request == "GET /x?y=1 HTTP/1.1"
        assert rec.status == 200
        assert rec.bytes == 0
        assert rec.referer == ""
        assert rec.user_agent == ""
        assert rec.request_completed is None

    def test_start_time_is_timezone_aware(self):
        rec = RequestRecord.start("10.0.0.1", "GET", "/", "HTTP/1.1")
        assert rec.request_started.tzinfo is not None

    def test_headers_copied(self):
        rec = RequestRecord.start("10.0.0.1", "GET", "/", "HTTP/1.1",
                                  referer="http://example.com/", user_agent="curl/8.0")
        assert rec.referer == "http://example.com/"
        assert rec.user_agent == "curl/8.0"

    def test_complete_sets_completion_after_start(self):
        rec = RequestRecord.start("10.0.0.1", "GET", "/", "HTTP/1.1")
        rec.complete()
        assert rec.request_completed is not None
        assert rec.request_completed >= rec.request_started


class TestElapsed:
    START = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)

    def test_zero_duration(self):
        assert _record(self.START, self.START).elapsed_ms == 0

    def test_truncates_to_whole_milliseconds(self):
        rec = _record(self.START, self.START + timedelta(microseconds=1999))
        assert rec.elapsed_ms == 1

    def test_seconds_converted(self):
        rec = _record(self.START, self.START + timedelta(seconds=2, milliseconds=345))
        assert rec.elapsed_ms == 2345

    def test_incomplete_record_reports_zero(self):
        assert _record(self.START, None).elapsed_ms == 0

    def test_backwards_clock_truncates_toward_zero(self):
        rec = _record(self.START, self.START - timedelta(microseconds=1500))
        assert rec.elapsed_ms == -1
