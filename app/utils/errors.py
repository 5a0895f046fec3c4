"""
Errors raised by the resolving proxy. Each one maps to the HTTP status the
proxy routes answer with.
"""


class ProxyError(Exception):
    status_code = 500
    message = 'Proxy error'

    def __init__(self, details: str = None, url: str = None):
        super().__init__(details or self.message)
        self.details = details
        self.url = url

    def to_dict(self) -> dict:
        data = {'error': self.message}
        if self.details:
            data['details'] = self.details
        return data


class BadRequest(ProxyError):
    status_code = 400
    message = 'A valid url parameter is required'


class PolicyViolation(ProxyError):
    status_code = 403
    message = 'Domain not allowed'


class DNSFailure(ProxyError):
    status_code = 502
    message = 'DNS resolution failed'


class FetchFailure(ProxyError):
    status_code = 502
    message = 'Error fetching upstream content'


class TooManyRedirects(FetchFailure):
    message = 'Too many redirects'


class UpstreamStatusError(ProxyError):
    """Upstream answered, but not with 200. The status is passed through as is."""
    message = 'Upstream returned an error status'

    def __init__(self, status_code: int, details: str = None, url: str = None):
        super().__init__(details, url)
        self.status_code = status_code
        self.message = f'Upstream returned status {status_code}'
