"""Logging helpers scoped to the orbit scene package."""
from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    default_level: int = logging.INFO, log_dir: Optional[str | Path] = None
) -> None:
    """Configure the ``orbit_scene`` loggers.

    Records go to stdout at ``default_level``; when ``log_dir`` is given a
    rotating ``orbit_scene.log`` also receives everything from DEBUG up.
    """

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": default_level,
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        }
    }
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(log_path / "orbit_scene.log"),
            "maxBytes": 10_485_760,
            "backupCount": 3,
            "encoding": "utf8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
                "detailed": {"format": DETAILED_FORMAT, "datefmt": DATE_FORMAT},
            },
            "handlers": handlers,
            "loggers": {
                "orbit_scene": {
                    "handlers": list(handlers),
                    "level": "DEBUG" if log_dir is not None else default_level,
                    "propagate": False,
                },
            },
        }
    )


def make_run_dir(root_dir: str | Path, run_id: Optional[str] = None, label: str = "run") -> Path:
    """Create a fresh timestamped directory below ``root_dir``."""

    root = Path(root_dir)
    root.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    def make_candidate(suffix: Optional[int] = None) -> str:
        base = run_id or f"{timestamp}_{label}"
        if suffix is None:
            return base
        if run_id:
            return f"{run_id}_{suffix}"
        return f"{base}_{suffix:02d}"

    candidate = make_candidate()
    suffix = 1
    while (root / candidate).exists():
        candidate = make_candidate(suffix)
        suffix += 1
    run_dir = root / candidate
    run_dir.mkdir(parents=True, exist_ok=False)
    return run_dir


class StatsLogger:
    """Buffered CSV log of per-frame reconciliation statistics."""

    HEADER = [
        "tick",
        "bodies",
        "individual",
        "batched",
        "created",
        "disposed",
        "skipped",
        "dropped",
    ]

    def __init__(
        self,
        root_dir: str | Path = "data/runs",
        run_id: Optional[str] = None,
        *,
        flush_threshold: int = 200,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.run_dir = make_run_dir(self.root_dir, run_id)
        self.run_id = self.run_dir.name

        self.frames_path = self.run_dir / "frames.csv"
        self.meta_path = self.run_dir / "meta.json"

        self._file = self.frames_path.open("w", newline="")
        self._file.write(",".join(self.HEADER) + "\n")
        self._buffer: list[str] = []
        self._threshold = max(1, flush_threshold)
        self.rows = 0

        (self.root_dir / "last_run.txt").write_text(self.run_id, encoding="utf-8")

    def write_meta(self, meta: dict) -> None:
        with self.meta_path.open("w", encoding="utf-8") as fh:
            json.dump(meta, fh, indent=2, sort_keys=True)

    def log_row(self, values: Sequence[int]) -> None:
        self._buffer.append(",".join(str(int(v)) for v in values))
        self.rows += 1
        if len(self._buffer) >= self._threshold:
            self.flush()

    def log_stats(self, tick: int, stats: object) -> None:
        """Record a ``SyncStats``-like object for ``tick``."""

        self.log_row([tick] + [getattr(stats, name) for name in self.HEADER[1:]])

    def flush(self) -> None:
        if self._buffer:
            self._file.write("\n".join(self._buffer) + "\n")
            self._file.flush()
            self._buffer.clear()

    def close(self) -> None:
        if self._file.closed:
            return
        self.flush()
        self._file.close()

    def __enter__(self) -> "StatsLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None


__all__ = ["StatsLogger", "make_run_dir", "setup_logging"]
