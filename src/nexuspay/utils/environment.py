"""
Typed environment lookups for NexusPay settings.

A ``.env`` file in the working directory is loaded once on import. Values
that fail to convert are logged and replaced by the caller's default.
"""

import logging
import os
from typing import Any, Callable, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("nexuspay.config")

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUTHY


def _to_list(raw: str) -> list:
    return [item.strip() for item in raw.split(",") if item.strip()]


_PARSERS: dict[type, Callable[[str], Any]] = {
    str: str,
    int: int,
    bool: _to_bool,
    list: _to_list,
}


def get_env_var(name: str, default: Any = None, var_type: Optional[type] = None) -> Any:
    """
    Read ``name`` from the environment, converted to ``var_type``.

    The target type falls back to the type of ``default`` (or ``str``).
    Unset variables and unparseable values both yield ``default``.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default

    target = var_type or (type(default) if default is not None else str)
    parse = _PARSERS.get(target, str)
    try:
        return parse(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a valid {target.__name__}, using {default!r}")
        return default


def get_env_var_bool(name: str, default: bool = False) -> bool:
    return get_env_var(name, default, bool)


def get_env_var_int(name: str, default: int) -> int:
    return get_env_var(name, default, int)


def get_env_var_list(name: str, default: Optional[list] = None) -> list:
    """Comma-separated list; blank items are dropped."""
    return get_env_var(name, [] if default is None else default, list)
