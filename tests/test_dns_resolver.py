import asyncio
from concurrent.futures import ThreadPoolExecutor

from app.utils.dns_resolver import DNSResolver, first_a_record


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class CountingQuery:
    """Stands in for the DoH endpoint."""

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    async def __call__(self, hostname, timeout):
        self.calls.append((hostname, timeout))
        if self.error:
            raise self.error
        return self.answer


def a_answer(ip='198.51.100.7', ttl=30):
    return {'Status': 0, 'Answer': [{'name': 'allowed.com', 'type': 1, 'TTL': ttl, 'data': ip}]}


def make_resolver(query, clock=None, min_ttl=60):
    return DNSResolver(endpoint='https://doh.test/dns-query', timeout=5, min_ttl=min_ttl,
                       clock=clock or FakeClock(), query=query)


class TestResolve:
    def test_resolves_first_a_record(self):
        query = CountingQuery({'Status': 0, 'Answer': [
            {'name': 'allowed.com', 'type': 5, 'TTL': 300, 'data': 'edge.allowed.net.'},
            {'name': 'edge.allowed.net', 'type': 1, 'TTL': 300, 'data': '198.51.100.7'},
            {'name': 'edge.allowed.net', 'type': 1, 'TTL': 300, 'data': '198.51.100.8'},
        ]})
        assert asyncio.run(make_resolver(query).resolve('allowed.com')) == '198.51.100.7'

    def test_cached_within_ttl(self):
        query = CountingQuery(a_answer())
        resolver = make_resolver(query)

        first = asyncio.run(resolver.resolve('allowed.com'))
        second = asyncio.run(resolver.resolve('allowed.com'))

        assert first == second == '198.51.100.7'
        assert len(query.calls) == 1

    def test_expiry_triggers_one_more_query(self):
        clock = FakeClock()
        query = CountingQuery(a_answer(ttl=30))
        resolver = make_resolver(query, clock)

        asyncio.run(resolver.resolve('allowed.com'))
        clock.now += 59
        asyncio.run(resolver.resolve('allowed.com'))
        assert len(query.calls) == 1

        clock.now += 2
        asyncio.run(resolver.resolve('allowed.com'))
        assert len(query.calls) == 2

    def test_long_ttl_is_kept(self):
        clock = FakeClock()
        query = CountingQuery(a_answer(ttl=600))
        resolver = make_resolver(query, clock)

        asyncio.run(resolver.resolve('allowed.com'))
        clock.now += 500
        asyncio.run(resolver.resolve('allowed.com'))
        assert len(query.calls) == 1

    def test_no_a_record_is_not_cached(self):
        query = CountingQuery({'Status': 3})
        resolver = make_resolver(query)

        assert asyncio.run(resolver.resolve('missing.allowed.com')) is None
        assert asyncio.run(resolver.resolve('missing.allowed.com')) is None
        assert len(query.calls) == 2
        assert resolver.cached('missing.allowed.com') is None

    def test_query_error_returns_none(self):
        resolver = make_resolver(CountingQuery(error=OSError('unreachable')))
        assert asyncio.run(resolver.resolve('allowed.com')) is None

    def test_malformed_answer_returns_none(self):
        resolver = make_resolver(CountingQuery({'Answer': [{'type': 1, 'TTL': 60, 'data': 'not-an-ip'}]}))
        assert asyncio.run(resolver.resolve('allowed.com')) is None

    def test_ip_literal_skips_query(self):
        query = CountingQuery(a_answer())
        assert asyncio.run(make_resolver(query).resolve('192.0.2.1')) == '192.0.2.1'
        assert query.calls == []

    def test_timeout_is_capped_by_caller(self):
        query = CountingQuery(a_answer())
        asyncio.run(make_resolver(query).resolve('allowed.com', timeout=1.5))
        assert query.calls == [('allowed.com', 1.5)]

    def test_clear(self):
        query = CountingQuery(a_answer())
        resolver = make_resolver(query)
        asyncio.run(resolver.resolve('allowed.com'))
        resolver.clear()
        asyncio.run(resolver.resolve('allowed.com'))
        assert len(query.calls) == 2

    def test_concurrent_resolution_from_threads(self):
        query = CountingQuery(a_answer())
        resolver = make_resolver(query)
        hostnames = ['allowed.com', 'cdn.allowed.com', 'stream.allowed.com'] * 10

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda host: asyncio.run(resolver.resolve(host)), hostnames))

        assert results == ['198.51.100.7'] * len(hostnames)
        for hostname in set(hostnames):
            assert resolver.cached(hostname) == '198.51.100.7'


def test_first_a_record_ignores_garbage():
    assert first_a_record(None) is None
    assert first_a_record({'Answer': None}) is None
    assert first_a_record({'Answer': ['x', {'type': 1, 'TTL': 'abc', 'data': '192.0.2.1'}]}) is None
    assert first_a_record({'Answer': [{'type': 1, 'TTL': 42, 'data': '192.0.2.1'}]}) == ('192.0.2.1', 42)
