from __future__ import annotations

import re
from typing import Optional

from .entities import PlaylistEntry, TrackRef
from .links import DEFAULT_SCHEME, DEFAULT_SERVICE_DOMAIN, detect

_TRACK_URI_PATTERN = re.compile(r"^\s*([a-z]+):track:([A-Za-z0-9]+)\s*$", re.IGNORECASE)


def track_ref_from_value(value: Optional[str],
                         name: Optional[str] = None,
                         scheme: str = DEFAULT_SCHEME,
                         domain: str = DEFAULT_SERVICE_DOMAIN) -> Optional[TrackRef]:
    if not value:
        return None
    match = _TRACK_URI_PATTERN.match(value)
    if match:
        if match.group(1).lower() != scheme:
            return None
        return TrackRef(id=match.group(2), scheme=scheme, name=name)
    linked = detect(value, domain=domain, scheme=scheme)
    if linked:
        return TrackRef(id=linked.id, scheme=scheme, name=name)
    return None


def build_entry(uri: Optional[str], name: Optional[str] = None, scheme: str = DEFAULT_SCHEME) -> PlaylistEntry:
    """Wrap a raw playlist item uri, attaching a canonical TrackRef when possible.

    A missing uri yields a placeholder entry for an unavailable item.
    """
    return PlaylistEntry(uri=uri, track=track_ref_from_value(uri, name=name, scheme=scheme), name=name)
