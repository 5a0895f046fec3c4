import pytest

from app import routes
from app.utils.domain_policy import DomainPolicy
from tests.fakes import FakeFetcher, FakeResolver

EMBED_DOMAINS = ['allowed.com', 'example-allowed.com']
STREAM_DOMAINS = EMBED_DOMAINS + ['stream.allowed.com']


@pytest.fixture
def policy():
    return DomainPolicy(EMBED_DOMAINS, STREAM_DOMAINS, cdn_domains=['cdn.jsdelivr.net'],
                        passthrough_domains=['allowed.com', 'image.tmdb.org'])


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def client(monkeypatch, policy, resolver, fetcher):
    from run import app

    monkeypatch.setattr(routes, 'domain_policy', policy)
    monkeypatch.setattr(routes, 'dns_resolver', resolver)
    monkeypatch.setattr(routes, 'fetcher', fetcher)
    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client
