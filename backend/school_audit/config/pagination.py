DEFAULT_LIMIT = 100
# Large enough for the full-export path, which asks for 10000 rows at once
MAX_LIMIT = 10000


def normalize_pagination(limit_raw, offset_raw, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
    """Coerce raw limit/offset values.

    Missing or non-positive limit falls back to ``default_limit``; negative offset is
    treated as zero. Non-integer input raises ValueError.
    """
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else default_limit
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except (TypeError, ValueError):
        raise ValueError('limit/offset must be int')
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)
    offset = max(0, offset)
    return limit, offset
