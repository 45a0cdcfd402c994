#!/usr/bin/env python3
# -*-coding: utf-8-*-
"""
Logging setup for the Patch Repository.

Features:
- Compact level-aware console/file formatter
- Optional structured JSON output (PATCHREPO_LOG_JSON=1)
- Size-rotating main and error log files
- Lightweight timing helpers that flag slow storage operations
"""

import logging
import logging.handlers
import os
import sys
import time
import threading
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any
from functools import lru_cache
from collections import defaultdict
import atexit

ROOT_LOGGER_NAME = "patchrepo"
SLOW_OPERATION_SECONDS = 1.0

# =====================================================================================================
# Formatters
# =====================================================================================================

class FastFormatter(logging.Formatter):
    """Level-aware formatter with optional ANSI colors."""

    def __init__(self, enable_colors: bool = False):
        super().__init__()
        self.enable_colors = enable_colors

        self._formats = {
            logging.ERROR: "[{asctime}] ERROR   [{name}] {message}",
            logging.WARNING: "[{asctime}] WARNING [{name}] {message}",
            logging.INFO: "[{asctime}] INFO    {message}",
            logging.DEBUG: "[{asctime}] DEBUG   {name}:{lineno} - {message}"
        }
        self._formatters = {
            level: logging.Formatter(fmt, style='{', datefmt='%H:%M:%S')
            for level, fmt in self._formats.items()
        }

        self.colors = {
            'ERROR': '\033[91m',
            'WARNING': '\033[93m',
            'INFO': '\033[92m',
            'DEBUG': '\033[94m',
            'RESET': '\033[0m'
        } if enable_colors else {}

    def format(self, record):
        level = record.levelno
        if level >= logging.ERROR:
            level = logging.ERROR
        formatter = self._formatters.get(level, self._formatters[logging.INFO])
        text = formatter.format(record)

        if self.enable_colors and record.levelname in self.colors:
            return f"{self.colors[record.levelname]}{text}{self.colors['RESET']}"
        return text


class JsonFormatter(logging.Formatter):
    """Structured JSON formatter (optional)."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pathname": record.pathname,
            "lineno": record.lineno,
            "thread": record.threadName,
            "process": record.process,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)

# =====================================================================================================
# Performance Logger
# =====================================================================================================

class SimplePerformanceLogger:
    """Accumulates operation timings and warns about slow ones."""

    def __init__(self, name: str = "performance",
                 slow_threshold: float = SLOW_OPERATION_SECONDS):
        self.logger = logging.getLogger(name)
        self.slow_threshold = slow_threshold
        self.metrics = defaultdict(float)
        self.counts = defaultdict(int)
        self._lock = threading.Lock()

    def log_timing(self, operation: str, duration: float):
        with self._lock:
            self.metrics[operation] += duration
            self.counts[operation] += 1

        if duration > self.slow_threshold:
            self.logger.warning("SLOW: %s took %.2fs", operation, duration)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = {}
            for operation in self.metrics:
                count = self.counts[operation]
                total = self.metrics[operation]
                stats[operation] = {
                    'count': count,
                    'total_time': total,
                    'avg_time': total / count if count > 0 else 0
                }
            return stats

    def reset(self):
        with self._lock:
            self.metrics.clear()
            self.counts.clear()

# =====================================================================================================
# Main Setup Function
# =====================================================================================================

def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_file_logging: bool = True,
    enable_console_logging: bool = True,
    max_log_size: str = "10MB",
    backup_count: int = 3,
    structured_json: Optional[bool] = None
) -> Dict[str, Any]:
    """Configure the ``patchrepo`` logger hierarchy.

    Handlers are attached to the ``patchrepo`` logger rather than the root
    logger so embedding applications keep control of their own output.

    Returns:
        Dict with the configured ``logger``, ``handlers`` and ``log_dir``.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    log_dir_path = Path(log_dir) if log_dir else Path("logs")
    size_bytes = _parse_size_string(max_log_size)

    repo_logger = logging.getLogger(ROOT_LOGGER_NAME)
    repo_logger.setLevel(numeric_level)

    for handler in repo_logger.handlers[:]:
        repo_logger.removeHandler(handler)
        handler.close()

    handlers = {}

    use_json = structured_json if structured_json is not None else _env_bool("PATCHREPO_LOG_JSON")

    if enable_console_logging:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)

        enable_colors = (hasattr(sys.stdout, 'isatty') and
                         sys.stdout.isatty() and
                         os.environ.get('TERM') != 'dumb')

        console_handler.setFormatter(JsonFormatter() if use_json else FastFormatter(enable_colors=enable_colors))
        repo_logger.addHandler(console_handler)
        handlers['console'] = console_handler

    if enable_file_logging:
        log_dir_path.mkdir(parents=True, exist_ok=True)

        main_handler = logging.handlers.RotatingFileHandler(
            str(log_dir_path / "patchrepo.log"),
            maxBytes=size_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        main_handler.setLevel(numeric_level)
        main_handler.setFormatter(JsonFormatter() if use_json else FastFormatter())
        repo_logger.addHandler(main_handler)
        handlers['main_file'] = main_handler

        error_handler = logging.handlers.RotatingFileHandler(
            str(log_dir_path / "errors.log"),
            maxBytes=size_bytes // 2,
            backupCount=backup_count,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(JsonFormatter() if use_json else FastFormatter())
        repo_logger.addHandler(error_handler)
        handlers['error_file'] = error_handler

    repo_logger.debug(
        "Logging initialized (level=%s, file=%s, console=%s, json=%s)",
        log_level, enable_file_logging, enable_console_logging, use_json,
    )

    return {
        'logger': repo_logger,
        'handlers': handlers,
        'log_dir': log_dir_path
    }

# =====================================================================================================
# Utility functions
# =====================================================================================================

def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_size_string(size_str: str) -> int:
    """Parse size string into bytes."""
    size_str = size_str.upper().strip()

    multipliers = {
        'KB': 1024,
        'MB': 1024 ** 2,
        'GB': 1024 ** 3,
        'B': 1,
    }

    for suffix, multiplier in multipliers.items():
        if size_str.endswith(suffix):
            try:
                number = float(size_str[:-len(suffix)].strip())
                return int(number * multiplier)
            except ValueError:
                continue

    # Plain number means bytes
    try:
        return int(float(size_str))
    except ValueError:
        pass

    return 10 * 1024 * 1024


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Get cached logger instance below the ``patchrepo`` namespace."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def cleanup_logging():
    """Detach and close the handlers installed by :func:`setup_logging`."""
    repo_logger = logging.getLogger(ROOT_LOGGER_NAME)

    for handler in repo_logger.handlers[:]:
        repo_logger.removeHandler(handler)
        try:
            handler.close()
        except OSError:
            pass

    get_logger.cache_clear()

# =====================================================================================================
# Global instance
# =====================================================================================================

_performance_logger = SimplePerformanceLogger(f"{ROOT_LOGGER_NAME}.performance")

atexit.register(cleanup_logging)


def log_performance(operation: str, duration: float):
    _performance_logger.log_timing(operation, duration)


def get_performance_stats() -> Dict[str, Any]:
    return _performance_logger.get_stats()


class LoggingTimer:
    """Simple timing context manager."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time = None
        self.duration = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration = time.perf_counter() - self.start_time
            log_performance(self.operation_name, self.duration)
