"""
Unit tests for the log format parsers.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from logsleuth.models.parsed_event import Severity
from logsleuth.models.raw_record import RawRecord
from logsleuth.parsers import (
    BracketedLineParser,
    FrameworkLineParser,
    PlainFatalParser,
    RecordWindow,
    SlowLogParser,
    StructuredJsonParser,
    parse_timestamp,
)


def window_of(text: str) -> RecordWindow:
    """Build a record window from multi-line text."""
    lines = text.split("\n")
    records = [RawRecord("test.log", i + 1, 0, line) for i, line in enumerate(lines)]
    return RecordWindow(records, 0)


# Sample records
MONOLOG_LINE = (
    '[2024-01-15T10:30:00.123456+00:00] app.ERROR: Payment failed for order 42 '
    '{"order_id":42,"user_id":7} {"url":"/checkout","http_method":"POST","ip":"10.0.0.1"}'
)

MONOLOG_EMPTY_CONTEXT = "[2024-01-15T10:30:00+00:00] security.INFO: User logged in [] []"

SYMFONY_LINE = (
    '[2024-01-15T10:30:00+00:00] request.CRITICAL: Uncaught PHP Exception RuntimeException: '
    '"Payment gateway timeout" at /var/www/src/Service/PaymentService.php line 88 '
    '{"exception":"[object] (RuntimeException(code: 0): Payment gateway timeout '
    'at /var/www/src/Service/PaymentService.php:88)"} []'
)

LARAVEL_RECORD = "\n".join([
    '[2024-01-15 10:30:00] production.ERROR: SQLSTATE[HY000] [2002] Connection refused '
    '{"exception":"[object] (PDOException(code: 2002): SQLSTATE[HY000] [2002] Connection refused '
    'at /var/www/html/vendor/laravel/framework/src/Illuminate/Database/Connectors/Connector.php:70)',
    "[stacktrace]",
    "#0 /var/www/html/vendor/laravel/framework/src/Illuminate/Database/Connectors/Connector.php(70): PDO->__construct()",
    "#1 /var/www/html/app/Repositories/OrderRepository.php(33): Illuminate\\\\Database\\\\Connection->select()",
    "#2 /var/www/html/app/Http/Controllers/OrderController.php(21): App\\\\Repositories\\\\OrderRepository->find()",
    "#3 {main}",
    '"}',
])

PHP_FATAL = "\n".join([
    "[15-Jan-2024 10:30:00 UTC] PHP Fatal error:  Uncaught RuntimeException: Connection lost in /var/www/src/Db.php:17",
    "Stack trace:",
    "#0 /var/www/src/Repository.php(20): App\\Db->connect()",
    "#1 {main}",
    "  thrown in /var/www/src/Db.php on line 17",
])

PHP_WARNING = "[15-Jan-2024 10:30:01 UTC] PHP Warning:  Undefined variable $id in /var/www/src/A.php on line 5"

SLOW_LOG = "\n".join([
    "[15-Jan-2024 10:30:00]  [pool www] pid 12345",
    "script_filename = /var/www/public/index.php",
    "[0x00007f1c2a6140a0] curl_exec() /var/www/vendor/guzzlehttp/guzzle/src/Handler/CurlHandler.php:44",
    "[0x00007f1c2a613f10] handle() /var/www/src/Service/Payment.php:88",
    "",
])

JSON_LINE = (
    '{"message":"Payment failed","context":{"order_id":42,"exception":{"class":"App\\\\Exception\\\\PaymentException",'
    '"message":"Card declined","code":0,"file":"/app/src/Service/PaymentService.php:88",'
    '"trace":["/app/src/Controller/CheckoutController.php:42","/app/vendor/symfony/http-kernel/HttpKernel.php:163"]}},'
    '"level":400,"level_name":"ERROR","channel":"app","datetime":"2024-01-15T10:30:00.123456+00:00",'
    '"extra":{"request_id":"req-abc"}}'
)

JSON_TRUNCATED = (
    '{"message":"Payment failed","level_name":"ERROR","datetime":"2024-01-15T10:30:00+00:00",'
    '"context":{"exception":{"class":"App\\\\Ex'
)


class TestParseTimestamp:
    """Tests for parse_timestamp function."""

    def test_iso_with_offset(self):
        """Test ISO timestamps are converted to UTC."""
        ts = parse_timestamp("2024-01-15T12:30:00+02:00")
        assert ts == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_iso_zulu_and_long_fraction(self):
        """Test Z suffix and more than six fractional digits."""
        ts = parse_timestamp("2024-01-15T10:30:00.123456789Z")
        assert ts == datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        """Test timestamps without zone are taken as UTC."""
        assert parse_timestamp("2024-01-15 10:30:00").tzinfo is not None

    def test_php_date_with_zone(self):
        """Test PHP error_log dates with a named zone."""
        try:
            ZoneInfo("Europe/Berlin")
        except ZoneInfoNotFoundError:
            pytest.skip("time zone database not available")
        ts = parse_timestamp("15-Jan-2024 10:30:00 Europe/Berlin")
        assert ts == datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)

    def test_php_date_unknown_zone(self):
        """Test an unknown zone makes the timestamp unusable."""
        assert parse_timestamp("15-Jan-2024 10:30:00 Mars/Olympus") is None

    def test_epoch_values(self):
        """Test epoch seconds and milliseconds."""
        expected = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert parse_timestamp(1705314600) == expected
        assert parse_timestamp(1705314600000) == expected

    def test_monolog_v1_dict(self):
        """Test serialized DateTime objects from Monolog 1.x."""
        ts = parse_timestamp({"date": "2024-01-15 10:30:00.000000", "timezone_type": 3, "timezone": "UTC"})
        assert ts == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_garbage(self):
        """Test unparseable values return None."""
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None


class TestBracketedLineParser:
    """Tests for the Monolog line format."""

    def test_parse_line_with_context(self):
        """Test parsing message, channel, level and trailing JSON."""
        result = BracketedLineParser().try_parse(window_of(MONOLOG_LINE))

        assert result is not None
        event = result.event
        assert result.consumed == 1
        assert event.timestamp == datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert event.severity == Severity.ERROR
        assert event.channel == "app"
        assert event.message == "Payment failed for order 42"
        assert event.normalized_message == "Payment failed for order <NUM>"
        assert event.context["context.order_id"] == 42
        assert event.context["extra.url"] == "/checkout"
        assert event.source_format == "bracketed-line"
        assert event.partial is False

    def test_parse_empty_context(self):
        """Test that empty [] [] context blocks are stripped."""
        event = BracketedLineParser().try_parse(window_of(MONOLOG_EMPTY_CONTEXT)).event

        assert event.message == "User logged in"
        assert event.severity == Severity.INFO
        assert event.channel == "security"
        assert event.context == {}

    def test_round_trip_fields(self):
        """Test that timestamp, level and message can be written back."""
        event = BracketedLineParser().try_parse(window_of(MONOLOG_EMPTY_CONTEXT)).event
        rebuilt = f"[{event.timestamp.isoformat()}] {event.channel}.{event.severity.name}: {event.message} [] []"
        assert rebuilt == MONOLOG_EMPTY_CONTEXT

    def test_not_a_bracketed_line(self):
        """Test foreign input is rejected."""
        assert BracketedLineParser().try_parse(window_of("hello world")) is None


class TestFrameworkLineParser:
    """Tests for Symfony and Laravel exception records."""

    def test_symfony_uncaught(self):
        """Test the Symfony request exception line."""
        result = FrameworkLineParser().try_parse(window_of(SYMFONY_LINE))
        event = result.event

        assert event.exception_kind == "RuntimeException"
        assert event.message == "Payment gateway timeout"
        assert event.source_location == "/var/www/src/Service/PaymentService.php:88"
        assert event.severity == Severity.CRITICAL
        assert event.channel == "request"
        assert event.partial is False

    def test_laravel_stacktrace(self):
        """Test a Laravel record with its multi-line stack trace."""
        result = FrameworkLineParser().try_parse(window_of(LARAVEL_RECORD))
        event = result.event

        assert result.consumed == 7
        assert event.partial is False
        assert event.exception_kind == "PDOException"
        assert event.message == "SQLSTATE[HY000] [2002] Connection refused"
        assert len(event.stack) == 3
        # Outermost first
        assert event.stack[0].file == "/var/www/html/app/Http/Controllers/OrderController.php"
        assert event.stack[-1].symbol == "PDO->__construct()"

    def test_laravel_truncated_trace(self):
        """Test a stack trace cut off before {main} is partial."""
        truncated = "\n".join(LARAVEL_RECORD.split("\n")[:4])
        result = FrameworkLineParser().try_parse(window_of(truncated))
        event = result.event

        assert event.partial is True
        assert event.exception_kind == "PDOException"
        assert event.message == "SQLSTATE[HY000] [2002] Connection refused"
        assert result.consumed == 4

    def test_stops_at_next_record(self):
        """Test that the next bracketed record is not consumed."""
        text = SYMFONY_LINE + "\n" + MONOLOG_EMPTY_CONTEXT
        result = FrameworkLineParser().try_parse(window_of(text))
        assert result.consumed == 1


class TestPlainFatalParser:
    """Tests for PHP error_log records."""

    def test_fatal_with_stack(self):
        """Test an uncaught exception with stack trace and thrown-in line."""
        result = PlainFatalParser().try_parse(window_of(PHP_FATAL))
        event = result.event

        assert result.consumed == 5
        assert event.severity == Severity.CRITICAL
        assert event.exception_kind == "RuntimeException"
        assert event.message == "Connection lost"
        assert event.source_location == "/var/www/src/Db.php:17"
        assert event.timestamp == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert len(event.stack) == 1
        assert event.partial is False

    def test_warning_single_line(self):
        """Test a one-line warning."""
        result = PlainFatalParser().try_parse(window_of(PHP_WARNING))
        event = result.event

        assert result.consumed == 1
        assert event.severity == Severity.WARNING
        assert event.exception_kind is None
        assert event.message == "Undefined variable $id"
        assert event.source_location == "/var/www/src/A.php:5"

    def test_truncated_stack(self):
        """Test a trace ending before {main} is partial."""
        truncated = "\n".join(PHP_FATAL.split("\n")[:3])
        result = PlainFatalParser().try_parse(window_of(truncated))

        assert result.event.partial is True
        assert result.consumed == 3
        assert result.event.exception_kind == "RuntimeException"

    def test_new_record_interrupts_stack(self):
        """Test that a new record before {main} ends a partial event."""
        text = "\n".join(PHP_FATAL.split("\n")[:3] + [PHP_WARNING])
        result = PlainFatalParser().try_parse(window_of(text))

        assert result.event.partial is True
        assert result.consumed == 3


class TestSlowLogParser:
    """Tests for PHP-FPM slow log entries."""

    def test_complete_entry(self):
        """Test an entry terminated by a blank line."""
        result = SlowLogParser().try_parse(window_of(SLOW_LOG))
        event = result.event

        assert result.consumed == 5
        assert event.partial is False
        assert event.severity == Severity.WARNING
        assert event.context["pool"] == "www"
        assert event.context["pid"] == 12345
        assert event.message == "Slow request in /var/www/public/index.php while executing curl_exec()"
        assert event.stack[-1].symbol == "curl_exec()"
        assert event.source_location == "/var/www/vendor/guzzlehttp/guzzle/src/Handler/CurlHandler.php:44"

    def test_unterminated_entry(self):
        """Test end of input before the blank separator."""
        result = SlowLogParser().try_parse(window_of(SLOW_LOG.rstrip("\n")))
        assert result.event.partial is True
        assert result.consumed == 4


class TestStructuredJsonParser:
    """Tests for JSON lines."""

    def test_monolog_json(self):
        """Test Monolog JsonFormatter output with an exception."""
        event = StructuredJsonParser().try_parse(window_of(JSON_LINE)).event

        assert event.severity == Severity.ERROR
        assert event.channel == "app"
        assert event.message == "Payment failed"
        assert event.exception_kind == "App\\Exception\\PaymentException"
        assert event.source_location == "/app/src/Service/PaymentService.php:88"
        assert event.context["context.order_id"] == 42
        assert event.context["extra.request_id"] == "req-abc"
        assert "context.exception" not in event.context
        # Trace is stored outermost first
        assert event.stack[0].file == "/app/vendor/symfony/http-kernel/HttpKernel.php"
        assert event.stack[-1].line == 42

    def test_truncated_json(self):
        """Test invalid JSON gives a partial event with recovered fields."""
        event = StructuredJsonParser().try_parse(window_of(JSON_TRUNCATED)).event

        assert event.partial is True
        assert event.message == "Payment failed"
        assert event.severity == Severity.ERROR
        assert event.timestamp == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_exception_fields_of_wrong_type(self):
        """Test non-string class and file values are ignored."""
        line = (
            '{"level_name":"ERROR","message":"Boom","datetime":"2024-01-15T10:30:00Z",'
            '"context":{"exception":{"class":{"name":"E"},"file":42,'
            '"trace":[{"file":["a"],"line":3,"function":"f"},"/app/src/A.php:9"]}}}'
        )
        event = StructuredJsonParser().try_parse(window_of(line)).event

        assert event.message == "Boom"
        assert event.exception_kind is None
        assert event.source_location is None
        assert [(f.file, f.line) for f in event.stack] == [("/app/src/A.php", 9), (None, 3)]
        hash(event.signature)

    def test_numeric_level(self):
        """Test Monolog numeric levels without level_name."""
        line = '{"message":"Disk almost full","level":300,"datetime":"2024-01-15T10:30:00Z"}'
        event = StructuredJsonParser().try_parse(window_of(line)).event
        assert event.severity == Severity.WARNING


class TestSeverity:
    """Tests for severity name resolution."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("warn", Severity.WARNING),
            ("Fatal error", Severity.CRITICAL),
            ("Parse error", Severity.CRITICAL),
            ("Deprecated", Severity.NOTICE),
            (550, Severity.ALERT),
            ("400", Severity.ERROR),
            ("bogus", Severity.INFO),
        ],
    )
    def test_from_name(self, name, expected):
        """Test aliases and numeric levels."""
        assert Severity.from_name(name) == expected

    def test_ordering(self):
        """Test severities are ordered."""
        assert Severity.DEBUG < Severity.WARNING < Severity.ERROR < Severity.EMERGENCY
        assert Severity.CRITICAL.is_error() is True
        assert Severity.WARNING.is_error() is False
