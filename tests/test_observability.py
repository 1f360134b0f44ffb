"""Tests for logging formatters, the structured logger and metric helpers."""

import json
import logging

from tribe_ai.observability.logging import (
    ColoredFormatter, JSONFormatter, get_structured_logger, setup_logging,
)
from tribe_ai.observability.metrics import record_sync_cycle, tribe_registry


def make_record(msg="Sync cycle finished", **extra):
    record = logging.LogRecord("tribe_ai.pipelines.sync", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_json_formatter_includes_extras(self):
        output = json.loads(JSONFormatter("tribe-ai").format(make_record(ctx_cursor=12)))

        assert output["message"] == "Sync cycle finished"
        assert output["service"] == "tribe-ai"
        assert output["level"] == "INFO"
        assert output["ctx_cursor"] == 12
        assert output["timestamp"].endswith("Z")

    def test_colored_formatter_appends_context(self):
        line = ColoredFormatter(use_colors=False).format(make_record(ctx_synced=3, ctx_skipped=1))

        assert "Sync cycle finished" in line
        assert "synced=3" in line
        assert "skipped=1" in line
        assert "\033[" not in line


class TestStructuredLogger:

    def test_context_is_attached(self, caplog):
        log = get_structured_logger("tribe_ai.test", checkpoint_key="flarum_posts")

        with caplog.at_level(logging.INFO, logger="tribe_ai.test"):
            log.bind(cursor=5).info("Cycle done", synced=2)

        record = caplog.records[-1]
        assert record.ctx_checkpoint_key == "flarum_posts"
        assert record.ctx_cursor == 5
        assert record.ctx_synced == 2


def test_setup_logging_writes_json_file(tmp_path):
    log_file = tmp_path / "logs" / "tribe.log"
    root = logging.getLogger()
    previous_handlers, previous_level = root.handlers[:], root.level
    try:
        setup_logging(level="DEBUG", log_file=str(log_file), use_colors=False)
        logging.getLogger("tribe_ai.test").info("written to file")
        for handler in root.handlers:
            handler.flush()
        lines = log_file.read_text().splitlines()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)

    assert json.loads(lines[-1])["message"] == "written to file"


def test_record_sync_cycle_counts_by_status():
    before = tribe_registry.get_sample_value("tribe_sync_cycles_total", {"status": "partial"}) or 0.0

    record_sync_cycle("partial", 0.2, synced=3, skipped=1)

    assert tribe_registry.get_sample_value("tribe_sync_cycles_total", {"status": "partial"}) == before + 1
