"""Structured logging for workflow execution."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name for terminal output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        original = record.levelname
        color = self.colors.get(original, self.colors["RESET"])
        record.levelname = f"{color}{original}{self.colors['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class WorkflowLogger:
    """File and console logging for a workflow run.

    Handlers are attached to the package logger, so messages from the
    analysis modules (``atac_bridge.core.*``) reach the same file and
    console as the step events.

    Parameters
    ----------
    log_dir : str or Path, optional
        Directory for log files; None forwards to ``logging`` only and
        leaves existing handlers alone
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str
        Logger name. Default: "atac_bridge"

    Example
    -------
    >>> logger = WorkflowLogger("out/logs", log_level="INFO")
    >>> logger.setup()
    >>> logger.log_step_start("quantify", "Peak quantification")
    >>> logger.log_step_complete("quantify", 95.0)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",  # Cyan
        "INFO": "\033[0;34m",  # Blue
        "WARNING": "\033[1;33m",  # Yellow
        "ERROR": "\033[0;31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        log_level: str = "INFO",
        log_name: str = "atac_bridge",
    ):
        self.log_level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(log_name)
        self.log_dir: Optional[Path] = None
        self.log_file: Optional[Path] = None
        if log_dir is None:
            return

        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = self.log_dir / f"workflow_{timestamp}.log"

        self.close()
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False

    def setup(self, console: bool = True) -> None:
        """Attach the file handler and, optionally, the coloured console handler."""
        if self.log_file is None:
            return

        file_handler = logging.FileHandler(self.log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        self.logger.addHandler(file_handler)

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_handler.setFormatter(
                ColoredFormatter(
                    fmt="%(asctime)s - %(levelname)s - %(message)s",
                    datefmt="%H:%M:%S",
                    colors=self.COLORS,
                )
            )
            self.logger.addHandler(console_handler)

    def close(self) -> None:
        """Detach and close all handlers."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self.logger.propagate = True

    def log_step_start(self, step_id: str, step_name: str) -> None:
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info(f"Starting step {step_id}: {step_name}")
        self.logger.info(separator)

    def log_step_complete(self, step_id: str, duration: float) -> None:
        self.logger.info(
            f"Step {step_id} completed in {self.format_duration(duration)}"
        )

    def log_step_error(self, step_id: str, error: str) -> None:
        self.logger.error(f"Step {step_id} failed: {error}")

    def log_info(self, message: str) -> None:
        self.logger.info(message)

    def log_warning(self, message: str) -> None:
        self.logger.warning(message)

    def log_error(self, message: str) -> None:
        self.logger.error(message)

    def log_debug(self, message: str) -> None:
        self.logger.debug(message)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format seconds as "45.2s", "1m 23s" or "2h 15m"."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        if seconds < 3600:
            return f"{int(seconds // 60)}m {int(seconds % 60)}s"
        return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60)}m"


