"""Centralized logging configuration module"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Union

# Whether already initialized
_initialized = False

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def rotate_logs(logs_dir: Path, base_name: str = "kaigi.log", keep_count: int = 3):
    """Manually rotate log files (keep latest N files)"""
    current_log = logs_dir / base_name

    # If current log doesn't exist or is small, no need to rotate
    if not current_log.exists() or current_log.stat().st_size < MAX_LOG_BYTES:
        return

    # Delete oldest backup
    oldest = logs_dir / f"{base_name}.{keep_count}"
    if oldest.exists():
        oldest.unlink()

    # Shift existing backups
    for i in range(keep_count - 1, 0, -1):
        old_file = logs_dir / f"{base_name}.{i}"
        new_file = logs_dir / f"{base_name}.{i + 1}"
        if old_file.exists():
            old_file.rename(new_file)

    # Rename current to .1
    backup_file = logs_dir / f"{base_name}.1"
    current_log.rename(backup_file)


def setup_logging(level: Union[str, int] = "INFO", logs_dir: Path = Path("logs")):
    """Configure logging to stderr and to a session-separated log file.

    stdout is left alone: it belongs to the console renderer.
    """
    global _initialized

    if _initialized:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Rotate logs if needed
    rotate_logs(logs_dir)

    log_file = logs_dir / "kaigi.log"

    # Write session separator
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write("\n" + "=" * 100 + "\n")
        f.write(f"Session started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write("=" * 100 + "\n\n")

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Configure root logger
    logging.basicConfig(
        level=level,
        handlers=[console_handler, file_handler],
        force=True
    )

    logging.getLogger('kaigi').setLevel(level)

    # Reduce log level for third-party libraries
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('google').setLevel(logging.WARNING)

    _initialized = True

    logging.getLogger(__name__).info(
        f"Logging initialized (level={logging.getLevelName(level)}, file={log_file.absolute()})"
    )
