"""
Hostname resolution over DNS-over-HTTPS (JSON API), bypassing the host's
system resolver. Answers are cached in-process per hostname.
"""

import ipaddress
import logging
import threading
import time
from dataclasses import dataclass

import aiohttp

DOH_URL = "https://1.1.1.1/dns-query"
DNS_TYPE_A = 1


@dataclass
class DNSCacheEntry:
    hostname: str
    ip: str
    expires_at: float


async def query_doh(endpoint: str, hostname: str, timeout: float) -> dict:
    """Issue one JSON-format A query against a DoH endpoint."""
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(endpoint,
                               params={'name': hostname, 'type': 'A'},
                               headers={'Accept': 'application/dns-json'}) as response:
            response.raise_for_status()
            return await response.json(content_type=None)


def first_a_record(answer: dict) -> tuple[str, int] | None:
    """Pick the first A record out of a DoH JSON answer, as (ip, ttl)."""
    if not isinstance(answer, dict):
        return None
    for record in answer.get('Answer') or []:
        if not isinstance(record, dict) or record.get('type') != DNS_TYPE_A:
            continue
        try:
            ip = str(ipaddress.IPv4Address(str(record.get('data', '')).strip()))
            ttl = int(record.get('TTL', 0))
        except ValueError:
            continue
        return ip, ttl
    return None


class DNSResolver:
    """
    Resolves hostnames to IPv4 addresses through a DoH endpoint.

    The cache is shared by every request thread, so reads and writes go through
    a lock. The lock is never held while querying upstream; two concurrent
    misses on the same hostname both query and the last answer wins.
    """

    def __init__(self, endpoint: str = DOH_URL, timeout: float = 5, min_ttl: int = 60,
                 clock=time.monotonic, query=None):
        """
        :param endpoint: The DoH endpoint, queried as ``?name=<host>&type=A``
        :param timeout: Seconds allowed for one upstream query
        :param min_ttl: Floor applied to the answer's TTL before caching
        :param clock: Monotonic clock, in seconds
        :param query: ``async (hostname, timeout) -> dict`` returning the DoH JSON answer
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.min_ttl = min_ttl
        self._clock = clock
        self._query = query or self._query_endpoint
        self._cache: dict[str, DNSCacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        return cls(endpoint=config.DOH_URL, timeout=config.DNS_TIMEOUT, min_ttl=config.DNS_MIN_TTL)

    async def _query_endpoint(self, hostname: str, timeout: float) -> dict:
        return await query_doh(self.endpoint, hostname, timeout)

    def cached(self, hostname: str) -> str | None:
        with self._lock:
            entry = self._cache.get(hostname)
            if entry and entry.expires_at > self._clock():
                return entry.ip
        return None

    def clear(self):
        with self._lock:
            self._cache.clear()

    async def resolve(self, hostname: str, timeout: float = None) -> str | None:
        """
        Resolve a hostname to an IPv4 address
        :param hostname: The hostname to resolve
        :param timeout: Overrides the resolver's own timeout, e.g. to honour a request deadline
        :return: The address, or None when it could not be resolved
        """
        if not hostname:
            return None
        hostname = hostname.lower().rstrip('.')

        try:
            return str(ipaddress.IPv4Address(hostname))
        except ValueError:
            pass

        if ip := self.cached(hostname):
            return ip

        timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        try:
            answer = await self._query(hostname, timeout)
        except Exception as e:
            logging.error(f"[DNS] Query for {hostname} via {self.endpoint} failed: {e!r}")
            return None

        record = first_a_record(answer)
        if not record:
            logging.error(f"[DNS] No A record for {hostname}")
            return None

        ip, ttl = record
        with self._lock:
            self._cache[hostname] = DNSCacheEntry(hostname, ip, self._clock() + max(ttl, self.min_ttl))
        logging.info(f"[DNS] {hostname} -> {ip} (ttl {max(ttl, self.min_ttl)}s)")
        return ip
