import logging

from workflow_store.core.logging import LoggingContextFilter, bind_log_context, configure_logging


def _record() -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)


def test_filter_uses_placeholders_outside_context():
    record = _record()
    LoggingContextFilter().filter(record)

    assert record.correlation_id == "-"
    assert record.project_ids == "-"


def test_filter_reads_bound_context():
    with bind_log_context(correlation_id="req-1", project_ids=["p1", "p2"]):
        record = _record()
        LoggingContextFilter().filter(record)

    assert record.correlation_id == "req-1"
    assert record.project_ids == "p1,p2"

    after = _record()
    LoggingContextFilter().filter(after)
    assert after.correlation_id == "-"


def test_configure_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging("debug")
        configure_logging("debug")

        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        assert any(isinstance(f, LoggingContextFilter) for f in root.handlers[0].filters)
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_configure_logging_defaults_to_store_log_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging()

        assert root.level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
