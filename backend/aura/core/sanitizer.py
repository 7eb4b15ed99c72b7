import re
from collections.abc import Mapping

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE | re.ASCII)


def _sanitize_string(value: str) -> str:
    # Removing one pattern can splice another together ("javajavascript:script:"),
    # so strip until nothing changes.
    while True:
        cleaned = _ANGLE_BRACKETS.sub("", value)
        cleaned = _JS_SCHEME.sub("", cleaned)
        cleaned = _EVENT_HANDLER.sub("", cleaned)
        cleaned = cleaned.strip()
        if cleaned == value:
            return cleaned
        value = cleaned


def sanitize(value):
    """
    Return a sanitized copy of a request payload.

    Strings lose angle brackets, `javascript:` schemes and inline event
    handlers (`onclick=`), and are trimmed. Mappings and lists are rebuilt
    with sanitized values; keys are kept as they are. Other values are
    returned untouched. The input is never mutated.
    """
    if isinstance(value, str):
        return _sanitize_string(value)
    if isinstance(value, Mapping):
        return {key: sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize(item) for item in value)
    return value
