"""
Context logger, per-batch log files and the console formatter.
"""

import contextvars
import logging

import pytest

from proposal_engine.utils.core.log import (
    DynamicPrefixFormatter,
    get_logger,
    pid_tool_logger,
    release_tool_logger,
    set_logger,
)


def _record(name: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, level, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestContextLogger:

    def test_unset_logger_raises(self):
        with pytest.raises(RuntimeError, match="logger not set"):
            contextvars.Context().run(get_logger)

    def test_set_logger_wraps_with_context(self):
        set_logger(logging.getLogger("ProposalEngine.ctx"), tool_name="upload", batch_id="b-1")
        logger = get_logger()
        assert isinstance(logger, logging.LoggerAdapter)
        assert logger.extra == {"tool_name": "upload", "batch_id": "b-1"}


@pytest.mark.unit
class TestBatchLogFile:

    def test_only_debug_and_errors_are_written(self, tmp_path):
        logger = pid_tool_logger("batch-7", "proposal_review")
        logger.debug("debug line")
        logger.info("info line")
        logger.error("error line")
        for handler in logger.handlers:
            handler.flush()

        content = (tmp_path / "process_logs" / "batch-7" / "proposal_review.log").read_text()
        assert "debug line" in content
        assert "error line" in content
        assert "info line" not in content
        release_tool_logger(logger)

    def test_repeat_calls_do_not_duplicate_handlers(self):
        pid_tool_logger("batch-8", "proposal_review")
        logger = pid_tool_logger("batch-8", "proposal_review")
        assert len(logger.handlers) == 1
        release_tool_logger(logger)

    def test_release_closes_handler_and_unregisters(self, tmp_path):
        logger = pid_tool_logger("batch-9", "proposal_review")
        handler = logger.handlers[0]
        logger.debug("kept after release")

        release_tool_logger(logger)

        assert logger.handlers == []
        assert handler.stream is None
        assert logger.name not in logging.Logger.manager.loggerDict
        content = (tmp_path / "process_logs" / "batch-9" / "proposal_review.log").read_text()
        assert "kept after release" in content

    def test_repeated_batches_hold_no_open_handlers(self):
        handlers = []
        for n in range(20):
            logger = pid_tool_logger(f"batch-r{n}", "proposal_review")
            handlers.extend(logger.handlers)
            release_tool_logger(logger)

        assert all(h.stream is None for h in handlers)
        assert not any(
            name.startswith("ProposalEngine.proposal_review.batch-r")
            for name in logging.Logger.manager.loggerDict
        )


@pytest.mark.unit
class TestDynamicPrefixFormatter:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("ProposalEngine.proposal_review.review-1", "REVIEW"),
            ("ProposalEngine.upload", "UPLOAD"),
            ("ProposalEngine.chat", "CHAT"),
            ("ProposalEngine", "-"),
        ],
    )
    def test_tool_base(self, name, expected):
        line = DynamicPrefixFormatter(color=False).format(_record(name))
        assert f"{expected:<9}:" in line

    def test_plain_line_layout(self):
        record = _record(
            "ProposalEngine.upload",
            level=logging.ERROR,
            batch_id="b-1",
            ip_address="127.0.0.1",
            request_type="POST",
            tool_name="upload",
        )
        line = DynamicPrefixFormatter(color=False).format(record)

        assert line.startswith("[-] ")
        assert "b-1" in line and "127.0.0.1" in line and "POST" in line
        assert line.endswith("hello")
        assert "\033[" not in line
