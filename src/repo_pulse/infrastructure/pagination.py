"""Link-header pagination helpers.

Endpoints such as ``/pulls`` expose no total; requesting ``per_page=1``
makes the ``rel="last"`` page number equal to the item count.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import parse_qs, urlsplit


def last_page(links: Mapping[str, Mapping[str, str]]) -> int | None:
    """Page number of the ``rel="last"`` link, or ``None`` if absent or unparsable.

    *links* is the ``{rel: {"url": ..., "rel": ...}}`` mapping httpx builds
    from the ``Link`` header (``httpx.Response.links``).
    """
    url = links.get("last", {}).get("url")
    if not url:
        return None
    try:
        pages = parse_qs(urlsplit(url).query).get("page")
        return int(pages[0]) if pages else None
    except ValueError:
        return None
