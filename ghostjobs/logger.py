"""
Structured logging system for ghostjobs.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for the analysis pipeline (admission, cache, snapshots,
source fetches).
"""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def _file_logging_default() -> bool:
    return os.getenv("GHOSTJOBS_LOG_FILE", "1").strip().lower() not in ("0", "false", "no", "off")


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring the analysis pipeline.
    """

    def __init__(
        self,
        name: str = "ghostjobs",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: Optional[bool] = None,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: GHOSTJOBS_LOG_DIR or logs/)
            enable_file: Write logs to file (default: GHOSTJOBS_LOG_FILE, on)
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.metrics = self._empty_metrics()

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file is None:
            enable_file = _file_logging_default()
        if enable_file:
            if log_dir is None:
                log_dir = Path(os.getenv("GHOSTJOBS_LOG_DIR", "logs"))
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"ghostjobs_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    @staticmethod
    def _empty_metrics() -> dict:
        return {
            "analyses_requested": 0,
            "admissions_granted": 0,
            "admissions_denied": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "snapshots_created": 0,
            "snapshots_skipped": 0,
            "errors_by_type": {},
            "provider_fetch_rate": {},
        }

    def set_level(self, level: str):
        """Change the logger and console level after creation."""
        value = getattr(logging, level.upper())
        self.logger.setLevel(value)
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(value)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_analysis(self):
        self.metrics["analyses_requested"] += 1

    def record_admission(self, granted: bool):
        key = "admissions_granted" if granted else "admissions_denied"
        self.metrics[key] += 1

    def record_cache(self, hit: bool):
        key = "cache_hits" if hit else "cache_misses"
        self.metrics[key] += 1

    def record_snapshot(self, created: bool):
        key = "snapshots_created" if created else "snapshots_skipped"
        self.metrics[key] += 1

    def record_fetch_attempt(self, provider: str):
        """Record a source fetch attempt for a provider."""
        stats = self.metrics["provider_fetch_rate"].setdefault(
            provider, {"attempts": 0, "successes": 0}
        )
        stats["attempts"] += 1

    def record_fetch_success(self, provider: str):
        if provider in self.metrics["provider_fetch_rate"]:
            self.metrics["provider_fetch_rate"][provider]["successes"] += 1

    def record_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics with per-provider success rates."""
        metrics_copy = self.metrics.copy()
        for provider, stats in metrics_copy["provider_fetch_rate"].items():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(stats["successes"] / stats["attempts"], 3)
        return metrics_copy

    def reset_metrics(self):
        self.metrics = self._empty_metrics()

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        lookups = metrics["cache_hits"] + metrics["cache_misses"]
        hit_rate = 0
        if lookups > 0:
            hit_rate = round(metrics["cache_hits"] / lookups * 100, 1)

        self.info("=== Analysis Session Metrics ===")
        self.info(f"Analyses: {metrics['analyses_requested']}")
        self.info(
            f"Admissions: {metrics['admissions_granted']} granted, "
            f"{metrics['admissions_denied']} denied"
        )
        self.info(f"Cache: {metrics['cache_hits']}/{lookups} hits ({hit_rate}%)")
        self.info(
            f"Snapshots: {metrics['snapshots_created']} created, "
            f"{metrics['snapshots_skipped']} skipped"
        )

        if metrics["provider_fetch_rate"]:
            self.info("Provider Fetch Rates:")
            for provider, stats in metrics["provider_fetch_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {provider}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "ghostjobs",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (default: GHOSTJOBS_LOG_LEVEL or INFO)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        level = level or os.getenv("GHOSTJOBS_LOG_LEVEL", "INFO")
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
