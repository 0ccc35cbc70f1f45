"""Logging helpers."""
from __future__ import annotations

import logging
from pathlib import Path


def configure_logging(level: str, log_dir: Path) -> None:
    """Configure basic logging for CLI usage."""
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "aggregator.log"),
        ],
    )
    # httpx logs every request at INFO; keep provider chatter out of the main log.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLogger().level))
