"""
Tests for logging configuration, formatters and the audit logger.
"""

import io
import json
import logging
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.logging_config import (
    AuditLogger, ColoredFormatter, JSONFormatter, get_logger, log_performance, setup_logging
)


def make_record(msg="hola", level=logging.INFO, **extra):
    record = logging.LogRecord("search.test", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record("Búsqueda")))
        assert data['level'] == 'INFO'
        assert data['logger'] == 'search.test'
        assert data['message'] == 'Búsqueda'
        assert data['timestamp'].endswith('Z')

    def test_extra_fields(self):
        data = json.loads(JSONFormatter().format(make_record(engine="semantic", duration_ms=4.2)))
        assert data['engine'] == 'semantic'
        assert data['duration_ms'] == 4.2

    def test_unserializable_extra(self):
        data = json.loads(JSONFormatter().format(make_record(payload={1, 2})))
        assert data['payload'] == repr({1, 2})

    def test_exception(self):
        try:
            raise ValueError("mal")
        except ValueError:
            record = make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))
        assert data['exception']['type'] == 'ValueError'
        assert data['exception']['message'] == 'mal'


class TestColoredFormatter:
    """Tests for ColoredFormatter."""

    def test_engine_and_duration(self):
        line = ColoredFormatter().format(make_record("Index rebuilt", engine="lexical", duration_ms=3))
        assert '[lexical]' in line
        assert '(3ms)' in line
        assert 'Index rebuilt' in line


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_output(self, restore_root):
        stream = io.StringIO()
        setup_logging(level='DEBUG', json_format=True, stream=stream)
        get_logger('search.test').info('listo', extra={'engine': 'lexical'})

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert lines[-1]['message'] == 'listo'
        assert lines[-1]['engine'] == 'lexical'

    def test_level(self, restore_root):
        root = setup_logging(level='warning', stream=io.StringIO())
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1


class TestLogPerformance:
    """Tests for the log_performance decorator."""

    def test_success(self, caplog):
        @log_performance('search.perf')
        def work():
            return 42

        with caplog.at_level(logging.DEBUG, logger='search.perf'):
            assert work() == 42
        assert caplog.records[-1].function == 'work'

    def test_failure_reraises(self, caplog):
        @log_performance('search.perf')
        def broken():
            raise RuntimeError("fallo")

        with caplog.at_level(logging.DEBUG, logger='search.perf'):
            with pytest.raises(RuntimeError):
                broken()
        assert caplog.records[-1].error_type == 'RuntimeError'


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_log_search(self, caplog):
        with caplog.at_level(logging.INFO, logger='retrieval.audit'):
            AuditLogger().log_search('x' * 150, results_count=2, mode='basic', fallback_from='semantic')

        record = caplog.records[-1]
        assert record.audit_type == 'search'
        assert len(record.query) == 100
        assert record.search_mode == 'basic'
        assert record.fallback_from == 'semantic'

    def test_log_index_build(self, caplog):
        with caplog.at_level(logging.INFO, logger='retrieval.audit'):
            AuditLogger().log_index_build('lexical', 6, 1.23456)

        record = caplog.records[-1]
        assert record.audit_type == 'index_build'
        assert record.documents == 6
        assert record.duration_ms == 1.235
