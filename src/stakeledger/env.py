# src/stakeledger/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

_LOADED = False


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """
    Load a .env file once per process, if there is one.

    - If python-dotenv isn't installed this is a no-op.
    - Path rules:
        1) dotenv_path argument
        2) STAKELEDGER_DOTENV_PATH
        3) ".env" in the current working directory
    - Variables already set in the environment win.

    Returns True if a dotenv file was found AND loaded, else False.
    """
    global _LOADED
    if _LOADED:
        return False

    path = Path(dotenv_path or os.getenv("STAKELEDGER_DOTENV_PATH", ".env")).expanduser()
    if not path.is_file():
        _LOADED = True
        return False

    try:
        from dotenv import load_dotenv
    except ImportError:
        # python-dotenv is an optional extra
        _LOADED = True
        return False

    load_dotenv(dotenv_path=str(path), override=False)
    _LOADED = True
    return True
