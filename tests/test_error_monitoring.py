import logging

import pytest

from pulse.utils.error_monitoring import (
    ErrorHandler,
    ErrorSeverity,
    NoResults,
    OperationTimeout,
    ParseError,
    PulseError,
    RetryExhausted,
    TransientNetworkError,
)


def test_taxonomy():
    assert issubclass(OperationTimeout, TransientNetworkError)
    for klass in (TransientNetworkError, ParseError, RetryExhausted, NoResults):
        assert issubclass(klass, PulseError)


def test_retry_exhausted_message_lists_errors():
    error = RetryExhausted("search 'q'", [TransientNetworkError("a down"), OperationTimeout("b slow")])
    assert "after 2 attempts" in str(error)
    assert "OperationTimeout: b slow" in str(error)
    assert "no attempts made" in str(RetryExhausted("search"))


@pytest.mark.parametrize("error, service, expected", [
    (NoResults("none"), "search", ErrorSeverity.INFO),
    (RetryExhausted("search"), "search", ErrorSeverity.HIGH),
    (RetryExhausted("feed"), "feeds", ErrorSeverity.MEDIUM),
    (ParseError("bad"), "search", ErrorSeverity.MEDIUM),
    (ParseError("bad"), "wikipedia", ErrorSeverity.LOW),
    (KeyError("bug"), "feeds", ErrorSeverity.HIGH),
])
def test_classify_severity(error, service, expected):
    assert ErrorHandler().classify_severity(error, service) == expected


def test_recovery_suggestion_follows_class_hierarchy():
    handler = ErrorHandler()
    assert "TIMEOUT" in handler.get_recovery_suggestion(OperationTimeout("slow"))
    assert handler.get_recovery_suggestion(RuntimeError("x")) is None


def test_handle_error_records_and_logs(caplog):
    handler = ErrorHandler()

    with caplog.at_level(logging.WARNING, logger="pulse.utils.error_monitoring"):
        try:
            raise RetryExhausted("search 'q'", [TransientNetworkError("down")])
        except RetryExhausted as e:
            context = handler.handle_error(e, "search", "discover", {"query": "q"})

    assert context.severity == "high"
    assert context.metadata == {"query": "q"}
    assert "RetryExhausted" in context.stack_trace
    assert '"event": "error"' in caplog.text

    summary = handler.get_error_summary()
    assert summary["total_errors"] == 1
    assert summary["by_type"] == {"RetryExhausted": 1}
    assert summary["recent"][0]["operation"] == "discover"


def test_handle_error_accepts_unraised_exceptions():
    context = ErrorHandler().handle_error(ValueError("never raised"), "unknown", "op")
    assert context.severity == "high"
    assert context.recovery_action is None
