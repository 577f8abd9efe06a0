"""Timestamped, tag-normalized logging with a process-wide level threshold."""

from __future__ import annotations

import builtins
import sys
import time
from typing import Any

DEFAULT_SYSTEM = "OUTREACH"

# Lower is chattier. Messages without a level tag count as INFO.
LEVELS = {"DEEP": 0, "DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}

_threshold = LEVELS["INFO"]


def set_log_level(level: str | None) -> None:
    """Drop messages below ``level``. Unknown names fall back to INFO."""
    global _threshold
    _threshold = LEVELS.get(str(level or "INFO").upper(), LEVELS["INFO"])


def _split_tags(message: str) -> tuple[list[str], str]:
    tags: list[str] = []
    remaining = message.lstrip()
    while remaining.startswith("["):
        end = remaining.find("]")
        if end == -1:
            break
        tag = remaining[1:end].strip()
        if not tag:
            break
        tags.append(tag)
        remaining = remaining[end + 1 :].lstrip()
    return tags, remaining


def _parse(message: str) -> tuple[str, str | None, list[str], str]:
    """Return (system, level, extra tags, text). ``[WARN][RUNNER]`` == ``[RUNNER][WARN]``."""
    tags, text = _split_tags(message)
    if not tags:
        return DEFAULT_SYSTEM, None, [], text
    if tags[0].upper() in LEVELS:
        system = tags[1] if len(tags) > 1 else DEFAULT_SYSTEM
        return system, tags[0].upper(), tags[2:], text
    level = tags[1].upper() if len(tags) > 1 and tags[1].upper() in LEVELS else None
    extra = tags[2:] if level else tags[1:]
    return tags[0], level, extra, text


def _format_message(message: str) -> str:
    system, level, extra_tags, text = _parse(message)
    head = f"[{system}][{level}]" if level else f"[{system}]"
    extra = f" [{' '.join(extra_tags)}]" if extra_tags else ""
    suffix = f" {text}" if text else ""
    return f"{head}{extra}{suffix}"


def tprint(*args: Any, **kwargs: Any) -> None:
    """Print with a timestamp prefix; WARN and ERROR lines go to stderr."""
    message = " ".join(str(arg) for arg in args)
    _, level, _, _ = _parse(message)
    if LEVELS.get(level or "INFO", LEVELS["INFO"]) < _threshold:
        return
    if level in ("WARN", "ERROR"):
        kwargs.setdefault("file", sys.stderr)
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S")
    builtins.print(f"[{timestamp}]{_format_message(message)}", **kwargs)
