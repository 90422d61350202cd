"""
Logging and Error Handling System

Sets up the ``archivist`` logger (full rotating log, error-only rotating log,
console) and tracks exceptions that escape the processing of a URL so they
can be written to an error report when the batch ends.
"""

import logging
import logging.handlers
import os
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .models import ErrorKind


DETAILED_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


class ArchivistLogger:
    """
    Attaches handlers to the ``archivist`` logger.

    Modules log through ``logging.getLogger(__name__)``; being inside the
    ``archivist`` package, their records reach these handlers.
    """

    def __init__(self, log_dir: str = "logs", app_name: str = "archivist"):
        """
        Args:
            log_dir: Directory to store log files
            app_name: Root logger name, also used for log file names
        """
        self.log_dir = Path(log_dir)
        self.app_name = app_name
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _rotating(self, suffix: str, max_mb: int, backups: int, level: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / f"{self.app_name}{suffix}.log",
            maxBytes=max_mb * 1024 * 1024,
            backupCount=backups,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        return handler

    def setup_logger(self, level: int = logging.INFO) -> logging.Logger:
        """
        Configure the application logger.

        A second call only changes the console level.

        Args:
            level: Console logging level

        Returns:
            The configured ``archivist`` logger
        """
        logger = logging.getLogger(self.app_name)
        logger.setLevel(logging.DEBUG)

        if logger.handlers:
            for handler in logger.handlers:
                if handler.get_name() == 'console':
                    handler.setLevel(level)
            return logger

        console = logging.StreamHandler(sys.stdout)
        console.set_name('console')
        console.setLevel(level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))

        logger.addHandler(self._rotating('', 10, 5, logging.DEBUG))
        logger.addHandler(console)
        logger.addHandler(self._rotating('_errors', 5, 3, logging.ERROR))
        return logger

    def log_startup(self, logger: logging.Logger):
        logger.debug(f"Archivist started (Python {sys.version.split()[0]}, {sys.platform})")
        logger.debug(f"Working directory: {os.getcwd()}; logs in {self.log_dir.absolute()}")


def initialize_logging(log_dir: str = "logs", level: int = logging.INFO) -> ArchivistLogger:
    """
    Configure logging for a command line run.

    Args:
        log_dir: Directory for log files
        level: Console logging level
    """
    setup = ArchivistLogger(log_dir)
    setup.log_startup(setup.setup_logger(level))
    return setup


@dataclass
class TrackedError:
    id: str
    kind: ErrorKind
    context: str
    url: Optional[str]
    exception_type: str
    message: str
    traceback: str
    occurred_at: datetime = field(default_factory=datetime.now)


class ErrorTracker:
    """
    Collects exceptions raised while a batch runs, keyed by URL and the
    error kind they were recorded as.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.errors: List[TrackedError] = []

    def log_error(self,
                  error: Exception,
                  kind: ErrorKind = ErrorKind.PROCESSING_ERROR,
                  context: str = "batch",
                  url: Optional[str] = None) -> str:
        """
        Record and log an exception.

        Args:
            error: The exception that occurred
            kind: Error kind the failure is reported under
            context: Workflow step that raised it
            url: URL being processed, if any

        Returns:
            Error ID for tracking
        """
        error_id = f"ERR_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{len(self.errors):03d}"
        tracked = TrackedError(
            id=error_id,
            kind=kind,
            context=context,
            url=url,
            exception_type=type(error).__name__,
            message=str(error),
            traceback=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
        )
        self.errors.append(tracked)

        where = f" while processing {url}" if url else ""
        self.logger.error(f"[{error_id}] {kind.name} in {context}{where}: {tracked.exception_type}: {tracked.message}")
        self.logger.debug(f"[{error_id}] Full traceback:\n{tracked.traceback}")
        return error_id

    def save_error_report(self, output_path: str) -> Optional[str]:
        """
        Write every tracked error, grouped by URL, to a text file.

        Returns:
            The path written, or None if the report could not be saved
        """
        by_url = {}
        for tracked in self.errors:
            by_url.setdefault(tracked.url or "(no URL)", []).append(tracked)

        lines = [
            "ARCHIVIST ERROR REPORT",
            "=" * 50,
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Errors: {len(self.errors)} across {len(by_url)} URLs",
            "",
        ]
        for url, errors in by_url.items():
            lines.append(f"URL: {url}")
            for tracked in errors:
                lines.append(f"  [{tracked.id}] {tracked.kind.name} during {tracked.context}")
                lines.append(f"  {tracked.exception_type}: {tracked.message}")
                lines.extend("    " + line for line in tracked.traceback.rstrip().splitlines())
            lines.append("-" * 50)

        try:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            self.logger.error(f"Failed to save error report: {e}")
            return None

        self.logger.info(f"Error report saved to: {output_path}")
        return output_path
