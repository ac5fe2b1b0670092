"""
JSON file I/O with error handling
"""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger


def safe_json_read(filepath: Path, default: Any = None) -> Any:
    """
    Read a JSON file, returning default when it is missing or invalid.

    Args:
        filepath: Path to JSON file
        default: Value returned if the file doesn't exist or can't be parsed

    Returns:
        Parsed JSON data or default
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not read {filepath}: {e}")
        return default


def atomic_write_json(filepath: Path, data: Any) -> bool:
    """
    Atomically write JSON data using a temporary file and replace.

    Readers never observe a half-written file, even if the process dies
    mid-write.

    Returns:
        True if successful, False otherwise
    """
    temp_path = filepath.with_suffix(filepath.suffix + ".tmp")
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_path, filepath)
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Could not write {filepath}: {e}")
        return False
