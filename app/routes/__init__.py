from app.utils.dns_resolver import DNSResolver
from app.utils.domain_policy import DomainPolicy
from app.utils.pinned_client import PinnedFetcher
from config import Config

domain_policy = DomainPolicy.from_config(Config)
dns_resolver = DNSResolver.from_config(Config)
fetcher = PinnedFetcher.from_config(Config)
