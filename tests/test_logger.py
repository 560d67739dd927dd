"""Tests for logging setup and run-id tagging."""

import asyncio
import io
import logging

from logger import get_logger, setup_logging, bind_run_id, current_run_id
from models import ReviewRequest


class TestRunContext:
    def test_default_outside_run(self):
        assert current_run_id() == "-"

    def test_bind_and_reset(self):
        with bind_run_id("kyc_run_1"):
            assert current_run_id() == "kyc_run_1"
            with bind_run_id("kyc_run_2"):
                assert current_run_id() == "kyc_run_2"
            assert current_run_id() == "kyc_run_1"
        assert current_run_id() == "-"

    def test_records_tagged(self, caplog):
        log = get_logger("kyc.test")
        with caplog.at_level(logging.INFO):
            with bind_run_id("kyc_run_9"):
                log.info("inside")
            log.info("outside")
        runs = {r.getMessage(): r.run_id for r in caplog.records}
        assert runs == {"inside": "kyc_run_9", "outside": "-"}

    def test_pipeline_logs_carry_run_id(self, pipeline, low_risk_documents, caplog):
        with caplog.at_level(logging.INFO):
            asyncio.run(pipeline.run(ReviewRequest(documents=low_risk_documents), run_id="case-7"))
        tagged = [r for r in caplog.records if r.name == "pipeline"]
        assert tagged
        assert all(r.run_id == "case-7" for r in tagged)


class TestSetup:
    def test_format_includes_run_id(self):
        stream = io.StringIO()
        setup_logging(level="INFO", format_string="%(run_id)s|%(message)s", stream=stream)
        try:
            with bind_run_id("kyc_run_fmt"):
                logging.getLogger("third.party").info("hello")
            assert stream.getvalue().strip() == "kyc_run_fmt|hello"
        finally:
            setup_logging()

    def test_log_file(self, tmp_path):
        log_path = tmp_path / "logs" / "review.log"
        setup_logging(level="INFO", format_string="%(message)s", stream=io.StringIO(), log_file=str(log_path))
        try:
            get_logger("kyc.file").info("to file")
            for handler in logging.getLogger().handlers:
                handler.flush()
            assert "to file" in log_path.read_text(encoding="utf-8")
        finally:
            for handler in logging.getLogger().handlers:
                handler.close()
            setup_logging()
