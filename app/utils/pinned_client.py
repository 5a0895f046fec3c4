"""
HTTP client that connects to a pre-resolved IP address.

The URL keeps its real hostname, so the TLS handshake sends it as SNI, the
certificate is checked against it and the ``Host`` header carries it. Only
the TCP connect goes to the address handed in by the caller. Redirects are
reported, never followed.
"""

import asyncio
import gzip
import logging
import socket
import ssl
import zlib
from dataclasses import dataclass, field
from urllib.parse import urlparse

import aiohttp
import brotli
from aiohttp.abc import AbstractResolver

from app.utils.common_utils import get_random_agent
from app.utils.errors import FetchFailure

FETCH_TIMEOUT = 15
DEFAULT_REFERER = "https://superflix.app/"
DEFAULT_PORTS = {'http': 80, 'https': 443}

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"


@dataclass
class FetchResult:
    """Outcome of a single pinned fetch."""
    url: str
    status: int
    body: bytes
    headers: dict = field(default_factory=dict)
    redirect_location: str | None = None
    # False when body still carries the upstream Content-Encoding
    decoded: bool = True

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    @property
    def content_type(self) -> str | None:
        return self.headers.get('content-type')

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400 and bool(self.redirect_location)


def decompress_body(data: bytes, encoding: str | None) -> tuple[bytes, bool]:
    """
    Decompress *data* according to the ``Content-Encoding`` value.
    Unknown encodings and corrupt bodies are returned as they are.
    :return: A tuple of (body, decoded)
    """
    if not data or not encoding:
        return data, True

    encoding = encoding.lower().strip()
    try:
        if encoding in ('gzip', 'x-gzip'):
            return gzip.decompress(data), True
        elif encoding == 'deflate':
            # zlib-wrapped first, raw deflate as fallback
            try:
                return zlib.decompress(data), True
            except zlib.error:
                return zlib.decompress(data, -zlib.MAX_WBITS), True
        elif encoding == 'br':
            return brotli.decompress(data), True
        elif encoding == 'identity':
            return data, True
        logging.warning(f"[Fetch] Unknown Content-Encoding: {encoding}, returning raw body")
    except (OSError, EOFError, zlib.error, brotli.error) as e:
        logging.warning(f"[Fetch] Failed to decompress {encoding} response ({e}), returning raw body")
    return data, False


def host_of(url: str) -> str:
    """``host[:port]`` of an URL, without userinfo and without the scheme's default port."""
    parsed = urlparse(url)
    host = parsed.hostname or ''
    if ':' in host:
        host = f'[{host}]'
    if parsed.port and parsed.port != DEFAULT_PORTS.get(parsed.scheme):
        host = f'{host}:{parsed.port}'
    return host


def origin_of(url: str) -> str:
    return f"{urlparse(url).scheme}://{host_of(url)}"


def build_request_headers(url: str, referer: str = None, binary: bool = False) -> dict:
    """Browser-like request headers for a page loaded inside an iframe."""
    referer = referer or DEFAULT_REFERER
    return {
        'Host': host_of(url),
        'User-Agent': get_random_agent('chrome'),
        'Accept': '*/*' if binary else HTML_ACCEPT,
        'Accept-Language': 'pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7',
        'Accept-Encoding': 'gzip, deflate, br',
        'Sec-Fetch-Dest': 'iframe',
        'Sec-Fetch-Mode': 'navigate',
        'Sec-Fetch-Site': 'cross-site',
        'Sec-Fetch-User': '?1',
        'Referer': referer,
        'Origin': origin_of(referer),
    }


class PinnedResolver(AbstractResolver):
    """aiohttp resolver that answers every lookup with one fixed address."""

    def __init__(self, ip: str):
        self.ip = ip

    async def resolve(self, host: str, port: int = 0, family: int = socket.AF_INET):
        return [{
            'hostname': host,
            'host': self.ip,
            'port': port,
            'family': socket.AF_INET,
            'proto': 0,
            'flags': socket.AI_NUMERICHOST,
        }]

    async def close(self) -> None:
        pass


class PinnedFetcher:
    """
    Fetches an URL from a given IP address while keeping the URL's hostname
    for SNI, certificate validation and the Host header.

    With ``verify_tls`` off, certificate checks are skipped for these
    connections only. Callers reach this class solely for allow-listed hosts.
    """

    def __init__(self, timeout: float = FETCH_TIMEOUT, verify_tls: bool = True, default_referer: str = None):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.default_referer = default_referer or DEFAULT_REFERER

    @classmethod
    def from_config(cls, config):
        return cls(timeout=config.FETCH_TIMEOUT, verify_tls=config.VERIFY_TLS,
                   default_referer=config.DEFAULT_REFERER)

    def _ssl_context(self):
        if not self.verify_tls:
            return False
        return ssl.create_default_context()

    async def fetch(self, url: str, resolved_ip: str, referer: str = None, binary: bool = False,
                    timeout: float = None) -> FetchResult:
        """
        Fetch an URL through a pinned address, without following redirects
        :param url: Absolute http(s) URL
        :param resolved_ip: IPv4 address to connect to
        :param referer: Referer to send, the proxy's own origin by default
        :param binary: Return the body exactly as received, skipping decompression
        :param timeout: Overrides the fetcher's own timeout, e.g. to honour a request deadline
        :return: FetchResult
        """
        timeout = self.timeout if timeout is None else min(timeout, self.timeout)
        headers = build_request_headers(url, referer or self.default_referer, binary)
        hostname = urlparse(url).hostname

        connector = aiohttp.TCPConnector(resolver=PinnedResolver(resolved_ip), ssl=self._ssl_context(),
                                         use_dns_cache=False, force_close=True)
        try:
            async with aiohttp.ClientSession(connector=connector,
                                             timeout=aiohttp.ClientTimeout(total=timeout),
                                             auto_decompress=False) as session:
                async with session.get(url, headers=headers, allow_redirects=False) as response:
                    raw = await response.read()
                    response_headers = {k.lower(): v for k, v in response.headers.items()}
                    status = response.status
        except asyncio.TimeoutError:
            logging.error(f"[Fetch] Timeout after {timeout}s fetching {url} ({hostname} @ {resolved_ip})")
            raise FetchFailure(f"Timeout after {timeout}s", url=url)
        except aiohttp.ClientError as e:
            logging.error(f"[Fetch] Error fetching {url} ({hostname} @ {resolved_ip}): {e!r}")
            raise FetchFailure(str(e) or e.__class__.__name__, url=url)

        if binary:
            body, decoded = raw, not response_headers.get('content-encoding')
        else:
            body, decoded = decompress_body(raw, response_headers.get('content-encoding'))

        redirect_location = None
        if 300 <= status < 400:
            redirect_location = response_headers.get('location')

        return FetchResult(url=url, status=status, body=body, headers=response_headers,
                           redirect_location=redirect_location, decoded=decoded)
