"""Run logging for ATAC-Bridge.

File loggers with timestamped names, plus structured run summaries
appended as JSON lines or YAML documents.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Tuple, Union

import numpy as np
import yaml

PathLike = Union[str, Path]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_timestamped_log_path(log_path: PathLike) -> Path:
    """Insert a timestamp before the suffix of ``log_path``.

    Example: transfer.log -> transfer_20260105_141502.log
    """
    log_path = Path(log_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return log_path.parent / f"{log_path.stem}_{timestamp}{log_path.suffix or '.log'}"


def get_logger(
    name: str,
    log_path: PathLike,
    level: int = logging.INFO,
    timestamped: bool = True,
) -> Tuple[logging.Logger, Path]:
    """Return a file logger for one command or workflow step.

    Parameters
    ----------
    name : str
        Logger name (e.g. 'atac_bridge.transfer').
    log_path : PathLike
        Base path for the log file.
    level : int
        Logging level (default: INFO).
    timestamped : bool
        Keep earlier logs by adding a timestamp to the filename;
        otherwise the file at ``log_path`` is replaced.

    Returns
    -------
    Tuple[logging.Logger, Path]
        The logger and the path it writes to.
    """
    log_path = Path(log_path)
    if timestamped:
        target = get_timestamped_log_path(log_path)
    else:
        target = log_path
        target.unlink(missing_ok=True)
    target.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(target, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger, target


def to_plain(value: Any) -> Any:
    """Convert numpy scalars/arrays and paths inside ``value`` to plain types."""
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Path):
        return str(value)
    return value


def _destination(log_path: PathLike) -> Path:
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def log_json(log_path: PathLike, record: dict[str, Any]) -> None:
    """Append ``record`` to ``log_path`` as one JSON line."""
    path = _destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(to_plain(record), default=str))
        handle.write("\n")


def log_yaml(
    log_path: PathLike,
    record: dict[str, Any],
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Append ``record`` as a YAML document.

    Parameters
    ----------
    log_path : PathLike
        Path to the summary file.
    record : dict
        Summary to serialise.
    logger : logging.Logger, optional
        Log the document through this logger instead of writing the file.
    """
    text = yaml.safe_dump(to_plain(record), sort_keys=False).rstrip("\n")
    message = f"{text}\n---"
    if logger is not None:
        logger.info("%s", message)
        return

    path = _destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(message)
        handle.write("\n")
