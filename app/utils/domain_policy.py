"""
Allow-lists of upstream origins the proxy is permitted to reach.
"""

from urllib.parse import urlparse


def get_hostname(url: str) -> str | None:
    """Return the lower-cased hostname of *url*, or None if it cannot be parsed."""
    try:
        hostname = urlparse(url).hostname
    except (TypeError, ValueError, AttributeError):
        return None
    return hostname or None


def host_matches(hostname: str, domains) -> bool:
    """True if hostname is one of *domains* or a subdomain of one of them."""
    if not hostname:
        return False
    hostname = hostname.lower().rstrip('.')
    return any(hostname == domain or hostname.endswith('.' + domain) for domain in domains)


def is_allowed(url: str, domains) -> bool:
    """
    Check an URL against a list of domain patterns
    :param url: The absolute URL to check
    :param domains: Domain patterns, matched exactly or on a dot boundary
    :return: False for any URL that does not parse
    """
    return host_matches(get_hostname(url), domains)


class DomainPolicy:
    """
    The proxy's allow-lists.

    ``embed_domains`` are pages that may be fetched and rewritten as a top-level
    document. ``stream_domains`` are origins whose URLs get routed back through
    the proxy once discovered inside a page or a playlist. ``cdn_domains`` are
    public CDNs the asset route may serve. ``passthrough_domains`` feed the
    generic proxy route.
    """

    def __init__(self, embed_domains, stream_domains, cdn_domains=(), passthrough_domains=()):
        self.embed_domains = self._normalize(embed_domains)
        self.stream_domains = self._normalize(stream_domains)
        self.cdn_domains = self._normalize(cdn_domains)
        self.passthrough_domains = self._normalize(passthrough_domains)

    @staticmethod
    def _normalize(domains) -> tuple:
        return tuple(domain.strip().lower().lstrip('*').lstrip('.') for domain in domains if domain.strip())

    @classmethod
    def from_config(cls, config):
        return cls(config.EMBED_DOMAINS, config.STREAM_DOMAINS,
                   config.CDN_DOMAINS, config.PASSTHROUGH_DOMAINS)

    @property
    def asset_domains(self) -> tuple:
        return self.stream_domains + self.cdn_domains

    def is_embeddable(self, url: str) -> bool:
        return is_allowed(url, self.embed_domains)

    def should_proxy(self, url: str) -> bool:
        return is_allowed(url, self.stream_domains)

    def is_asset_allowed(self, url: str) -> bool:
        return is_allowed(url, self.asset_domains)

    def is_cdn(self, url: str) -> bool:
        return is_allowed(url, self.cdn_domains)

    def is_passthrough_allowed(self, url: str) -> bool:
        return is_allowed(url, self.passthrough_domains)
