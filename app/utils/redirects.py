"""
Redirect handling for pinned fetches. This is the only place redirects are
followed; every hop is resolved and authorized again.
"""

import logging
import time
from urllib.parse import urljoin

from app.utils.domain_policy import get_hostname, is_allowed
from app.utils.errors import DNSFailure, FetchFailure, PolicyViolation, TooManyRedirects
from app.utils.pinned_client import FetchResult

MAX_REDIRECTS = 5


def absolute_location(current_url: str, location: str) -> str:
    """Resolve a Location header value against the URL that returned it."""
    return urljoin(current_url, location.strip())


class RedirectWalker:
    """
    Follows redirects through a resolver and a pinned fetcher.

    ``resolver`` needs ``async resolve(hostname, timeout=None) -> str | None``
    and ``fetcher`` needs ``async fetch(url, ip, referer=None, binary=False,
    timeout=None) -> FetchResult``.
    """

    def __init__(self, resolver, fetcher, max_hops: int = MAX_REDIRECTS, clock=time.monotonic):
        self.resolver = resolver
        self.fetcher = fetcher
        self.max_hops = max_hops
        self._clock = clock

    def _remaining(self, deadline: float | None, url: str) -> float | None:
        if deadline is None:
            return None
        remaining = deadline - self._clock()
        if remaining <= 0:
            logging.error(f"[Proxy] Deadline exceeded before fetching {url}")
            raise FetchFailure("Deadline exceeded", url=url)
        return remaining

    async def fetch_once(self, url: str, referer: str = None, binary: bool = False,
                         deadline: float = None) -> FetchResult:
        """Resolve the URL's hostname and fetch it once, redirects included in the result."""
        hostname = get_hostname(url)
        ip = await self.resolver.resolve(hostname, timeout=self._remaining(deadline, url))
        if not ip:
            logging.error(f"[Proxy] DNS failed for: {hostname} ({url})")
            raise DNSFailure(f"Could not resolve {hostname}", url=url)

        logging.info(f"[Proxy] {hostname} -> {ip}")
        return await self.fetcher.fetch(url, ip, referer=referer, binary=binary,
                                        timeout=self._remaining(deadline, url))

    async def fetch(self, url: str, domains, referer: str = None, binary: bool = False,
                    deadline: float = None) -> FetchResult:
        """
        Fetch an URL, following up to ``max_hops`` redirects
        :param url: Absolute URL to fetch
        :param domains: Allow-list every hop must match
        :param referer: Referer sent on every hop
        :param binary: Binary-mode fetch, see PinnedFetcher.fetch
        :param deadline: Monotonic time by which the whole walk must be done
        :return: The first response that is not a redirect
        """
        current_url = url
        redirects = 0

        while True:
            if not is_allowed(current_url, domains):
                kind = "Redirect" if redirects else "Request"
                logging.error(f"[Proxy] {kind} to a domain that is not allowed: {current_url}")
                raise PolicyViolation(f"{get_hostname(current_url)} is not allowed", url=current_url)

            result = await self.fetch_once(current_url, referer=referer, binary=binary, deadline=deadline)
            if not result.is_redirect:
                return result

            if redirects >= self.max_hops:
                logging.error(f"[Proxy] Too many redirects starting at {url}")
                raise TooManyRedirects(f"More than {self.max_hops} redirects", url=url)

            next_url = absolute_location(current_url, result.redirect_location)
            logging.info(f"[Proxy] Redirect {result.status} -> {next_url}")
            current_url = next_url
            redirects += 1
