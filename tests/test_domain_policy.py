from app.utils.domain_policy import DomainPolicy, get_hostname, host_matches, is_allowed

DOMAINS = ['allowed.com', 'embedtv.best']


class TestIsAllowed:
    def test_exact_hostname(self):
        assert is_allowed('https://allowed.com/page', DOMAINS)

    def test_subdomain(self):
        assert is_allowed('https://cdn.allowed.com/a.png', DOMAINS)
        assert is_allowed('https://a.b.allowed.com/', DOMAINS)

    def test_suffix_without_dot_boundary(self):
        assert not is_allowed('https://notallowed.com/', DOMAINS)
        assert not is_allowed('https://allowed.com.evil.net/', DOMAINS)

    def test_unlisted_host(self):
        assert not is_allowed('https://other.com/', DOMAINS)

    def test_hostname_case_and_port(self):
        assert is_allowed('https://CDN.Allowed.COM:8443/x', DOMAINS)

    def test_malformed_urls(self):
        assert not is_allowed('not a url', DOMAINS)
        assert not is_allowed('http://[::1', DOMAINS)
        assert not is_allowed('', DOMAINS)
        assert not is_allowed(None, DOMAINS)

    def test_host_matches_empty(self):
        assert not host_matches(None, DOMAINS)
        assert not host_matches('', DOMAINS)


def test_get_hostname():
    assert get_hostname('https://Stream.Allowed.com/live.m3u8') == 'stream.allowed.com'
    assert get_hostname('/relative/path') is None


class TestDomainPolicy:
    def setup_method(self):
        self.policy = DomainPolicy(['allowed.com'], ['allowed.com', 'stream.net'],
                                   cdn_domains=['cdn.jsdelivr.net'], passthrough_domains=['*.image.tmdb.org'])

    def test_embed_list_is_narrower_than_stream_list(self):
        assert self.policy.is_embeddable('https://allowed.com/filme/1')
        assert not self.policy.is_embeddable('https://edge.stream.net/live.m3u8')
        assert self.policy.should_proxy('https://edge.stream.net/live.m3u8')

    def test_assets_include_cdns(self):
        assert self.policy.is_asset_allowed('https://cdn.jsdelivr.net/npm/hls.js')
        assert self.policy.is_cdn('https://cdn.jsdelivr.net/npm/hls.js')
        assert not self.policy.should_proxy('https://cdn.jsdelivr.net/npm/hls.js')

    def test_wildcard_patterns_are_normalized(self):
        assert self.policy.passthrough_domains == ('image.tmdb.org',)
        assert self.policy.is_passthrough_allowed('https://image.tmdb.org/t/p/w500/a.jpg')
