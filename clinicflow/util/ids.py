import threading

import ulid

_lock = threading.Lock()
_last = None


def _next_ulid():
    global _last
    with _lock:
        value = ulid.new()
        # ULIDs minted in the same millisecond are not ordered; bump past the last one
        if _last is not None and value.int <= _last.int:
            value = ulid.from_int(_last.int + 1)
        _last = value
        return value


def new_id(prefix: str = "") -> str:
    """
    Prefixed ULID, e.g. ``enr_01J9...``.

    Ids are strictly increasing within the process, which the execution-log
    cursor relies on.
    """
    return prefix + _next_ulid().str
