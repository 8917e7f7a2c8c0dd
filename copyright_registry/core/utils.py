import uuid
import os
import shutil
import structlog
from pathlib import Path
from typing import BinaryIO

from copyright_registry import config

logger = structlog.get_logger()

def new_id() -> str:
    """Generate a new unique record ID."""
    return str(uuid.uuid4())

def file_extension(filename: str) -> str:
    """Lower-cased extension including the dot, or an empty string."""
    return Path(filename).suffix.lower() if filename else ""

def ensure_dir_exists(dir_path: str) -> str:
    """Ensure directory exists, create if it doesn't."""
    try:
        Path(dir_path).mkdir(parents=True, exist_ok=True)
        return dir_path
    except Exception as e:
        logger.error("Failed to create directory", dir_path=dir_path, error=str(e))
        raise

def store_track_file(fileobj: BinaryIO, original_filename: str, tracks_dir: str = None) -> str:
    """
    Copy uploaded audio into the tracks directory under a generated name.

    Returns:
        Stored filename, relative to the tracks directory
    """
    tracks_dir = tracks_dir or config.TRACKS_DIR
    ensure_dir_exists(tracks_dir)

    filename = f"{new_id()}{file_extension(original_filename)}"
    target_path = os.path.join(tracks_dir, filename)

    try:
        with open(target_path, "wb") as f:
            shutil.copyfileobj(fileobj, f)

        logger.info("Stored track audio",
                   original_filename=original_filename, filename=filename,
                   size=format_file_size(os.path.getsize(target_path)))
        return filename

    except Exception as e:
        logger.error("Failed to store track audio", original_filename=original_filename, error=str(e))
        remove_file(target_path)
        raise

def resolve_track_path(filename: str, tracks_dir: str = None) -> str:
    """Absolute path of a stored track file; rejects names escaping the tracks directory."""
    base = Path(tracks_dir or config.TRACKS_DIR).resolve()
    path = (base / filename).resolve()
    if base not in path.parents:
        raise ValueError(f"Invalid track filename: {filename}")
    return str(path)

def remove_file(file_path: str) -> bool:
    """Remove a file safely."""
    try:
        if file_path and os.path.exists(file_path):
            os.unlink(file_path)
            logger.debug("Removed file", file_path=file_path)
            return True
        return False
    except OSError as e:
        logger.warning("Failed to remove file", file_path=file_path, error=str(e))
        return False

def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format."""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size_bytes >= 1024 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1

    return f"{size_bytes:.1f} {size_names[i]}"
