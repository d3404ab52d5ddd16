"""
Shared Utilities

Sections:
- Logging setup
- Filesystem and path operations
- Retry and backoff mechanisms
- JSON helpers
"""

import functools
import json
import logging
import os
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# =============================================================================
# Logging
# =============================================================================

def setup_logging(
    verbose: bool,
    target_name: Optional[str] = None,
    enable_file_logging: bool = False
) -> Optional[Path]:
    """
    Configure logging with optional timestamped file output.

    Args:
        verbose: Enable debug-level logging if True
        target_name: Name used for the log file
        enable_file_logging: Create timestamped log files when True

    Returns:
        Path of the log file, if one was created
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_file = None

    if enable_file_logging:
        logs_dir = Path("logs")
        logs_dir.mkdir(exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = logs_dir / f"{target_name or 'export'}_{timestamp}.log"

        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return log_file


# =============================================================================
# Filesystem and Path Operations
# =============================================================================

def ensure_directory(path: Path) -> Path:
    """
    Ensure directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure

    Returns:
        Path object for the directory
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def partial_path(path: Path) -> Path:
    """Sibling path that downloads are written to before being moved into place."""
    return path.with_name(path.name + ".part")


def replace_file(source: Path, dest: Path) -> None:
    """Atomically move ``source`` over ``dest``."""
    os.replace(source, dest)


def remove_quietly(path: Path) -> None:
    """Delete a leftover partial file; a missing file is not an error."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial file {path}: {e}")


# =============================================================================
# Retry and Backoff Mechanisms
# =============================================================================

def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,)
) -> Callable:
    """
    Decorator for retry logic with exponential backoff.

    Only ``exceptions`` are retried; anything else propagates on the first
    attempt. Every failed attempt is logged with its exception type so
    connection resets and read timeouts can be told apart in export logs.
    The final failure is re-raised unchanged.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        exceptions: Exception types to retry on

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_retries + 1
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    reason = f"{type(e).__name__}: {e}"
                    if attempt == attempts:
                        logger.error(f"{func.__name__} gave up after {attempts} attempt(s); last error {reason}")
                        raise
                    delay = base_delay * (backoff_factor ** (attempt - 1))
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{attempts} failed with {reason}; "
                        f"retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)

        return wrapper
    return decorator


# =============================================================================
# JSON Helpers
# =============================================================================

def load_json_file(file_path: Path) -> Any:
    """
    Load JSON file with error handling.

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed JSON content

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is not valid JSON
    """
    if not file_path.exists():
        raise FileNotFoundError(f"JSON file not found: {file_path}")

    try:
        with open(file_path, encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e}") from e


def write_json_file(file_path: Path, data: Any) -> int:
    """
    Write JSON to ``file_path`` through a partial file.

    Returns:
        Number of bytes written
    """
    payload = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
    tmp_path = partial_path(file_path)
    try:
        with open(tmp_path, "wb") as f:
            f.write(payload)
        replace_file(tmp_path, file_path)
    except OSError:
        remove_quietly(tmp_path)
        raise
    return len(payload)
