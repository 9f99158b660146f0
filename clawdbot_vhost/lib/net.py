from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import httpx

from ..errors import ProvisioningError

logger = logging.getLogger(__name__)

HEALTH_ATTEMPTS = 5
HEALTH_DELAY_S = 2.0
HEALTH_TIMEOUT_S = 5.0
HEALTH_TRANSPORT_RETRIES = 3

DOWNLOAD_TIMEOUT_S = 120.0


def build_client(
    *,
    timeout_s: float = HEALTH_TIMEOUT_S,
    retries: int = HEALTH_TRANSPORT_RETRIES,
    follow_redirects: bool = False,
) -> httpx.Client:
    """Client whose transport retries transient connection failures itself."""

    return httpx.Client(
        timeout=httpx.Timeout(timeout_s),
        transport=httpx.HTTPTransport(retries=retries),
        follow_redirects=follow_redirects,
        headers={"User-Agent": "clawdbot-vhost"},
    )


def check_reachable(
    url: str,
    *,
    attempts: int = HEALTH_ATTEMPTS,
    delay_s: float = HEALTH_DELAY_S,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll url until it answers below 400, at most `attempts` times."""

    owned = client is None
    c = client or build_client()
    try:
        for attempt in range(1, attempts + 1):
            try:
                r = c.get(url)
                if r.status_code < 400:
                    logger.info("Health check ok: %s (HTTP %s, attempt %d)", url, r.status_code, attempt)
                    return True
                logger.info("Health check %s answered HTTP %s (attempt %d/%d)", url, r.status_code, attempt, attempts)
            except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
                # UnicodeError: host names the IDNA codec rejects.
                logger.info("Health check %s failed (attempt %d/%d): %s", url, attempt, attempts, e)
            if attempt < attempts:
                sleep(delay_s)
        return False
    finally:
        if owned:
            c.close()


def fetch_text(url: str, *, timeout_s: float = 30.0) -> str:
    """GET a text resource, failing on any non-2xx answer."""

    logger.info("GET %s", url)
    try:
        with build_client(timeout_s=timeout_s, follow_redirects=True) as c:
            r = c.get(url)
            r.raise_for_status()
            return r.text
    except httpx.HTTPError as e:
        raise ProvisioningError(f"Fetching {url} failed: {e}") from e


def download(url: str, dest: str, *, timeout_s: float = DOWNLOAD_TIMEOUT_S) -> str:
    logger.info("Downloading %s -> %s", url, dest)
    p = Path(dest)
    p.parent.mkdir(parents=True, exist_ok=True)
    try:
        with build_client(timeout_s=timeout_s, follow_redirects=True) as c:
            with c.stream("GET", url) as r:
                r.raise_for_status()
                with p.open("wb") as f:
                    for chunk in r.iter_bytes():
                        f.write(chunk)
    except httpx.HTTPError as e:
        raise ProvisioningError(f"Downloading {url} failed: {e}") from e
    return str(p)
