"""Lenient coercion of model-supplied tool arguments."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def int_arg(args: Dict[str, Any], key: str, default: Optional[int] = None, minimum: Optional[int] = None):
    """Integer value of ``args[key]``, or ``default`` when missing or unparsable.

    Models send things like ``"all"`` or ``"10 lines"``; those fall back to the
    default instead of failing the step.
    """
    value = args.get(key)
    if value is None or value == "" or isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        try:
            number = int(float(value))
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"ignoring non-integer {key}={value!r}")
            return default
    if minimum is not None and number < minimum:
        return default if default is not None else minimum
    return number
