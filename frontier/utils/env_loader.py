from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import find_dotenv, load_dotenv
from loguru import logger


ENV_FILE_VARIABLE = "FRONTIER_ENV_FILE"


def resolve_env_file(dotenv_path: Union[str, Path, None] = None) -> Optional[Path]:
    """Pick the .env file for this frontier process.

    An explicit path wins, then ``FRONTIER_ENV_FILE``, then the nearest ``.env``
    above the working directory. Returns None when the chosen file is missing.
    """
    candidate = dotenv_path or os.getenv(ENV_FILE_VARIABLE) or find_dotenv(usecwd=True)
    if not candidate:
        return None

    path = Path(candidate)
    return path if path.is_file() else None


def load_environment(dotenv_path: Union[str, Path, None] = None, *, override: bool = False) -> bool:
    """Load frontier settings from a .env file into ``os.environ``.

    Variables already set in the environment are kept unless ``override``.
    Returns True if a file was found and loaded.
    """
    path = resolve_env_file(dotenv_path)
    if path is None:
        return False

    loaded = load_dotenv(dotenv_path=path, override=override)
    logger.debug(f"Loaded frontier environment from {path}")
    return loaded
