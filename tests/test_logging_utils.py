import csv
import json
import logging
import logging.handlers

import pytest

from orbit_scene.core.logging_utils import StatsLogger, make_run_dir, setup_logging
from orbit_scene.render.reconciler import SyncStats


@pytest.fixture
def restore_package_logger():
    logger = logging.getLogger("orbit_scene")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    yield logger
    for handler in logger.handlers:
        if handler not in saved[0]:
            handler.close()
    logger.handlers[:], logger.level, logger.propagate = saved


class TestSetupLogging:
    def test_console_only(self, restore_package_logger):
        setup_logging(logging.WARNING)
        logger = restore_package_logger
        assert logger.level == logging.WARNING
        assert not logger.propagate
        assert len(logger.handlers) == 1

    def test_file_handler(self, restore_package_logger, tmp_path):
        setup_logging(logging.INFO, log_dir=tmp_path / "logs")
        logger = restore_package_logger
        assert logger.level == logging.DEBUG
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers)
        logging.getLogger("orbit_scene.test").debug("hello file")
        for handler in logger.handlers:
            handler.flush()
        assert "hello file" in (tmp_path / "logs" / "orbit_scene.log").read_text(encoding="utf8")


class TestRunDirs:
    def test_collisions_get_suffixes(self, tmp_path):
        first = make_run_dir(tmp_path, run_id="same")
        second = make_run_dir(tmp_path, run_id="same")
        assert first != second
        assert first.is_dir() and second.is_dir()

    def test_generated_name_uses_label(self, tmp_path):
        path = make_run_dir(tmp_path, label="recording")
        assert path.name.endswith("_recording")


class TestStatsLogger:
    def test_rows_and_meta(self, tmp_path):
        with StatsLogger(tmp_path, run_id="r1", flush_threshold=2) as stats_logger:
            stats_logger.write_meta({"scenario": "inner_solar"})
            stats_logger.log_stats(1, SyncStats(bodies=3, individual=2, batched=1, created=2))
            stats_logger.log_stats(2, SyncStats(bodies=3, individual=2, batched=1))
            stats_logger.log_stats(3, SyncStats(bodies=2, individual=1, batched=1, disposed=1))
            run_dir = stats_logger.run_dir
        with (run_dir / "frames.csv").open(encoding="utf-8", newline="") as fh:
            rows = list(csv.reader(fh))
        assert rows[0] == list(StatsLogger.HEADER)
        assert rows[1] == ["1", "3", "2", "1", "2", "0", "0", "0"]
        assert len(rows) == 4
        meta = json.loads((run_dir / "meta.json").read_text(encoding="utf-8"))
        assert meta["scenario"] == "inner_solar"
        assert (tmp_path / "last_run.txt").read_text(encoding="utf-8") == run_dir.name
