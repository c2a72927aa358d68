"""
Input Sanitisation
==================

Server-side cleaning of filenames and free-text note fields. Clients run
the same rules before sending, but nothing they send is trusted.
"""

import re

MAX_FILENAME_LENGTH = 255
MAX_TEXT_LENGTH = 200
DEFAULT_FILENAME = "document.pdf"

_FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9_ .-]")
_DOT_RUNS = re.compile(r"\.{2,}")
_LEADING_DOTS = re.compile(r"^\.+")

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_filename(filename: str | None) -> str:
    """
    Normalise an uploaded filename.

    Characters outside ASCII letters, digits, ``_``, space, dot and dash become ``_``,
    runs of dots collapse to one, leading dots are dropped and the result
    is capped at 255 characters.
    """
    if not filename:
        return DEFAULT_FILENAME

    # Browsers on Windows may send the full client path
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]

    name = _FILENAME_UNSAFE.sub("_", name)
    name = _DOT_RUNS.sub(".", name)
    name = _LEADING_DOTS.sub("", name)
    name = name.strip()[:MAX_FILENAME_LENGTH]

    return name or DEFAULT_FILENAME


def sanitize_text(value: str | None) -> str | None:
    """Strip markup and script fragments from a free-text field, then trim."""
    if value is None:
        return None

    cleaned = _ANGLE_BRACKETS.sub("", value)
    cleaned = _JS_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()
