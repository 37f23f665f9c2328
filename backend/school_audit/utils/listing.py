"""Conditional GET support for audit listings.

The validator pair is an ETag over the page window plus ``Last-Modified`` taken
from the newest ``changed_at`` visible to the caller. Entries are append-only, so
a new entry in scope always moves the ETag. ``Last-Modified`` carries whole
seconds only and moves once the new entry lands in a later second.
"""
from __future__ import annotations
import hashlib
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Dict, List, Optional, Sequence

from flask import make_response, request


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def canonicalize_timestamp(dt: datetime) -> datetime:
    return _as_utc(dt).replace(microsecond=0)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Stored naive-UTC timestamp -> ISO 8601 with a Z suffix."""
    if dt is None:
        return None
    return _as_utc(dt).isoformat().replace('+00:00', 'Z')


def compute_etag(ids: Sequence[Any], total: int, limit: int, offset: int, latest_iso: str = '') -> str:
    seed = '|'.join([','.join(str(i) for i in ids), str(total), str(limit), str(offset), latest_iso])
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(entries: List[Dict[str, Any]], total: int, limit: int, offset: int) -> Dict[str, Any]:
    return {
        'success': True,
        'entries': entries,
        'count': len(entries),
        'total': total,
        'limit': limit,
        'offset': offset,
    }


def _validator_headers(resp, etag: str, latest: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest is not None:
        latest_c = canonicalize_timestamp(latest)
        resp.headers['Last-Modified'] = format_datetime(latest_c, usegmt=True)
        resp.headers['X-Last-Modified-ISO'] = isoformat_utc(latest_c)
    return resp


def make_cached_list_response(entries: List[Dict[str, Any]], total: int, limit: int, offset: int,
                              latest: Optional[datetime] = None):
    """JSON list response with validators; returns ``(response, etag)``."""
    latest_iso = isoformat_utc(canonicalize_timestamp(latest)) if latest is not None else ''
    etag = compute_etag([e.get('id') for e in entries], total, limit, offset, latest_iso)
    resp = make_response(build_list_payload(entries, total, limit, offset))
    return _validator_headers(resp, etag, latest), etag


def parse_http_timestamp(value: Optional[str]) -> Optional[datetime]:
    """If-Modified-Since value as aware UTC; accepts RFC 1123 dates and ISO 8601."""
    if not value:
        return None
    try:
        return _as_utc(datetime.fromisoformat(value.strip().replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return _as_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError):
        return None


def handle_conditional(etag: str, latest: Optional[datetime]):
    """304 response when the request's validators still match, else None.

    If-None-Match takes precedence; If-Modified-Since is only consulted without it.
    """
    if_none_match = request.headers.get('If-None-Match')
    if if_none_match:
        candidates = {tag.strip().strip('"') for tag in if_none_match.split(',')}
        fresh = etag in candidates or '*' in candidates
    else:
        since = parse_http_timestamp(request.headers.get('If-Modified-Since'))
        fresh = (since is not None and latest is not None
                 and canonicalize_timestamp(latest) <= canonicalize_timestamp(since))
    if not fresh:
        return None
    return _validator_headers(make_response('', 304), etag, latest)
