import asyncio

import pytest

from app.utils.errors import DNSFailure, FetchFailure, PolicyViolation, TooManyRedirects
from app.utils.redirects import RedirectWalker, absolute_location
from tests.fakes import FakeFetcher, FakeResolver

DOMAINS = ['allowed.com']


def redirect_chain(fetcher, hops, final_status=200):
    for hop in range(hops):
        fetcher.add(f'https://allowed.com/{hop}', status=302, location=f'/{hop + 1}')
    fetcher.add(f'https://allowed.com/{hops}', status=final_status, body='done')


class TestRedirectWalker:
    def setup_method(self):
        self.resolver = FakeResolver()
        self.fetcher = FakeFetcher()
        self.walker = RedirectWalker(self.resolver, self.fetcher, max_hops=5)

    def walk(self, url, **kwargs):
        return asyncio.run(self.walker.fetch(url, DOMAINS, **kwargs))

    def test_no_redirect(self):
        self.fetcher.add('https://allowed.com/page', body='hello')
        result = self.walk('https://allowed.com/page')
        assert result.text == 'hello'
        assert self.resolver.calls == ['allowed.com']

    def test_max_hops_redirects_then_success(self):
        redirect_chain(self.fetcher, 5)
        result = self.walk('https://allowed.com/0')
        assert result.status == 200
        assert result.url == 'https://allowed.com/5'
        assert len(self.fetcher.calls) == 6

    def test_one_redirect_too_many(self):
        redirect_chain(self.fetcher, 6)
        with pytest.raises(TooManyRedirects):
            self.walk('https://allowed.com/0')
        assert len(self.fetcher.calls) == 6

    def test_redirect_escaping_allow_list(self):
        self.fetcher.add('https://allowed.com/start', status=301, location='https://evil.net/steal')
        with pytest.raises(PolicyViolation):
            self.walk('https://allowed.com/start')
        assert 'evil.net' not in self.resolver.calls
        assert [call['url'] for call in self.fetcher.calls] == ['https://allowed.com/start']

    def test_initial_url_not_allowed(self):
        with pytest.raises(PolicyViolation):
            self.walk('https://evil.net/')
        assert self.resolver.calls == []
        assert self.fetcher.calls == []

    def test_redirect_across_allowed_subdomain(self):
        self.fetcher.add('https://allowed.com/a', status=302, location='//cdn.allowed.com/b')
        self.fetcher.add('https://cdn.allowed.com/b', body='moved')
        result = self.walk('https://allowed.com/a', referer='https://site.test/')
        assert result.text == 'moved'
        assert self.resolver.calls == ['allowed.com', 'cdn.allowed.com']
        assert all(call['referer'] == 'https://site.test/' for call in self.fetcher.calls)

    def test_non_200_is_returned(self):
        self.fetcher.add('https://allowed.com/gone', status=404, body='nope')
        assert self.walk('https://allowed.com/gone').status == 404

    def test_dns_failure(self):
        self.resolver.answers['allowed.com'] = None
        with pytest.raises(DNSFailure):
            self.walk('https://allowed.com/page')
        assert self.fetcher.calls == []

    def test_binary_mode_is_passed_to_every_hop(self):
        redirect_chain(self.fetcher, 2)
        self.walk('https://allowed.com/0', binary=True)
        assert all(call['binary'] for call in self.fetcher.calls)

    def test_deadline_exceeded(self):
        walker = RedirectWalker(self.resolver, self.fetcher, clock=lambda: 100.0)
        with pytest.raises(FetchFailure):
            asyncio.run(walker.fetch('https://allowed.com/page', DOMAINS, deadline=99.0))
        assert self.resolver.calls == []


def test_absolute_location():
    assert absolute_location('https://allowed.com/a/b', 'c') == 'https://allowed.com/a/c'
    assert absolute_location('https://allowed.com/a/b', '/c') == 'https://allowed.com/c'
    assert absolute_location('https://allowed.com/a/b', 'https://x.allowed.com/') == 'https://x.allowed.com/'
