from typing import Optional


def clamp_limit(limit: Optional[int], default: int = 50, max_: int = 100) -> int:
    return default if limit is None else min(max(limit, 1), max_)
