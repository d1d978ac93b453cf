import json
import logging

from utils.logging_config import LogContext, SanitizingFormatter, StructuredFormatter


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("coinify.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_sanitizing_formatter_redacts_tokens():
    formatter = SanitizingFormatter("%(message)s")

    output = formatter.format(_record("signup ok offline_token=abc123 user=7"))

    assert "abc123" not in output
    assert "offline_token=[REDACTED]" in output
    assert "user=7" in output


def test_structured_formatter_includes_extra_fields():
    formatter = StructuredFormatter()

    output = json.loads(formatter.format(_record("paid", trade_id=42, address="addr-1")))

    assert output["message"] == "paid"
    assert output["trade_id"] == 42
    assert output["address"] == "addr-1"


def test_log_context_adds_fields_within_scope():
    with LogContext(trade_id=5):
        inside = logging.getLogRecordFactory()("n", logging.INFO, "f", 1, "m", (), None)
    outside = logging.getLogRecordFactory()("n", logging.INFO, "f", 1, "m", (), None)

    assert inside.trade_id == 5
    assert not hasattr(outside, "trade_id")
