from __future__ import annotations

import logging
from pathlib import Path

FORMATTER = logging.Formatter("%(asctime)s | %(name)s | %(levelname)s | %(message)s")


def init_logger(
    logger_name: str = "pinholebearing",
    log_dir: Path | None = None,
    console_level: int = logging.INFO,
) -> logging.Logger:
    """
    Attach a console handler (and a `<log_dir>/<logger_name>.log` file handler when
    `log_dir` is given) to the named logger. Library modules only call
    `logging.getLogger(__name__)`; handlers are configured here, by applications.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)

    # Re-initialising (e.g. repeated CLI calls in one process) must not stack handlers.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    sh = logging.StreamHandler()
    sh.setLevel(console_level)
    sh.setFormatter(FORMATTER)
    logger.addHandler(sh)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / f"{logger_name}.log", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(FORMATTER)
        logger.addHandler(fh)

    logger.propagate = False
    return logger
