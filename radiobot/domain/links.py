"""Track link detection in free-form chat text.

Supports share links of the form::

    https://open.spotify.com/track/{id}
    https://open.spotify.com/intl-de/track/{id}?si=...
    https://open.spotify.com/embed/track/{id}
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import List, Optional

from .entities import TrackRef

DEFAULT_SERVICE_DOMAIN = "spotify.com"
DEFAULT_SCHEME = "spotify"


@lru_cache(maxsize=8)
def _track_url_pattern(domain: str) -> re.Pattern:
    return re.compile(
        r"https?://open\." + re.escape(domain) + r"/"
        r"(?:intl-[a-z]{2}(?:-[a-z]{2})?/)?"
        r"(?:embed/)?"
        r"track/([A-Za-z0-9]*)",
        re.IGNORECASE,
    )


def detect(text: str,
           domain: str = DEFAULT_SERVICE_DOMAIN,
           scheme: str = DEFAULT_SCHEME) -> Optional[TrackRef]:
    """Return the track referenced by the first share link in ``text``.

    Only the first link is considered. A link whose id segment is empty
    yields ``None`` rather than a degenerate reference.
    """
    if not text:
        return None
    match = _track_url_pattern(domain).search(text)
    if not match or not match.group(1):
        return None
    return TrackRef(id=match.group(1), scheme=scheme)


def detect_all(text: str,
               domain: str = DEFAULT_SERVICE_DOMAIN,
               scheme: str = DEFAULT_SCHEME) -> List[TrackRef]:
    """Return every well-formed track link in ``text`` in order of appearance."""
    if not text:
        return []
    return [
        TrackRef(id=track_id, scheme=scheme)
        for track_id in _track_url_pattern(domain).findall(text)
        if track_id
    ]


def mentions_track_link(text: str, domain: str = DEFAULT_SERVICE_DOMAIN) -> bool:
    """True when ``text`` mentions a track page of the service, parsable or not."""
    if not text:
        return False
    return re.search(r"open\." + re.escape(domain) + r"/\S*track", text, re.IGNORECASE) is not None
