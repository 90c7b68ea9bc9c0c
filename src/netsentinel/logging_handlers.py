"""Log file handler and retention helpers."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path


class DateStampedFileHandler(logging.FileHandler):
    """File handler writing to ``<directory>/<YYYY-MM-DD>/<prefix>_<time>.log``.

    Dates and times use the host's local timezone, matching what an operator
    sees on the kiosk clock.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = "netsentinel",
        encoding: str | None = "utf-8",
        delay: bool = False,
        current_time: datetime | None = None,
    ) -> None:
        local_time = (current_time or datetime.now(timezone.utc)).astimezone()
        date_folder = local_time.strftime("%Y-%m-%d")
        file_name = f"{prefix}_{local_time.strftime('%Y-%m-%d_%H-%M-%S')}.log"
        log_path = (Path(directory) / date_folder / file_name).resolve()

        log_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(log_path, mode="a", encoding=encoding, delay=delay)


def cleanup_old_logs(
    log_directory: str | Path,
    retention_hours: int,
    logger: logging.Logger | None = None,
) -> tuple[int, int]:
    """Delete ``*.log`` files older than ``retention_hours`` and prune empty date folders.

    Returns:
        Tuple of (files_deleted, errors_encountered). A retention of 0 disables cleanup.
    """
    if retention_hours <= 0:
        return (0, 0)

    dir_path = Path(log_directory).resolve()
    if not dir_path.exists():
        return (0, 0)

    cutoff = datetime.now(timezone.utc) - timedelta(hours=retention_hours)
    files_deleted = 0
    errors = 0

    for log_file in dir_path.rglob("*.log"):
        try:
            mtime = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
            if mtime < cutoff:
                log_file.unlink()
                files_deleted += 1
        except OSError as e:
            errors += 1
            if logger:
                logger.warning(f"Failed to delete {log_file}: {e}")

    for date_dir in dir_path.iterdir():
        if date_dir.is_dir() and not any(date_dir.iterdir()):
            try:
                date_dir.rmdir()
            except OSError as e:
                if logger:
                    logger.debug(f"Could not remove {date_dir}: {e}")

    if logger and files_deleted:
        logger.info(f"Log cleanup removed {files_deleted} file(s), {errors} error(s)")

    return (files_deleted, errors)


__all__ = ["DateStampedFileHandler", "cleanup_old_logs"]
