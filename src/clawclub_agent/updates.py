from __future__ import annotations

from datetime import datetime, timedelta
from http.client import HTTPException
import logging
import re
from typing import Callable

from clawclub_agent.http_utils import get_text
from clawclub_agent.models import parse_ts, utc_now
from clawclub_agent.storage import KeyValueStore

LOGGER = logging.getLogger("clawclub_agent")

AGENT_VERSION = "1.2.0"
LAST_CHECK_KEY = "last_version_check"
CHECK_INTERVAL = timedelta(days=7)

_VERSION_PATTERN = re.compile(r"""(?:AGENT_VERSION\s*=\s*["']|\bVersion:\s*)([\d.]+)""")


def parse_remote_version(source: str) -> str | None:
    match = _VERSION_PATTERN.search(source)
    return match.group(1) if match else None


def check_for_update(
    store: KeyValueStore,
    version_url: str,
    fetch: Callable[[str], str] = get_text,
    clock: Callable[[], datetime] = utc_now,
) -> str | None:
    """Weekly check of the published version; returns the newer version, if any.

    The published source may carry either a `Version: x.y.z` header line or an
    `AGENT_VERSION = "x.y.z"` assignment. An empty `version_url` disables the
    check.
    """
    if not version_url:
        return None
    now = clock()
    raw_last = store.get(LAST_CHECK_KEY)
    try:
        last = parse_ts(raw_last) if isinstance(raw_last, str) else None
    except ValueError:
        last = None
    if last is not None and now - last < CHECK_INTERVAL:
        return None
    store.set(LAST_CHECK_KEY, now.isoformat())

    try:
        remote = parse_remote_version(fetch(version_url))
    except (OSError, HTTPException, UnicodeDecodeError) as exc:
        LOGGER.debug("version_check_failed url=%s error=%s", version_url, exc)
        return None
    if remote and remote != AGENT_VERSION:
        LOGGER.info("update_available remote=%s current=%s url=%s", remote, AGENT_VERSION, version_url)
        return remote
    return None
