import logging
from flask import jsonify, Response

from app.utils.domain_policy import get_hostname
from app.utils.errors import ProxyError

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, OPTIONS',
    'Access-Control-Allow-Headers': '*',
}


def log_error(err: ProxyError):
    """
    Logs a proxy failure with the URL and hostname it concerns
    """
    url = err.url or 'unknown url'
    logging.error(f"{err.__class__.__name__} [{err.status_code}] {url} "
                  f"(host: {get_hostname(err.url) if err.url else '-'}) -> {err.details or err.message}")


def respond_with(data: dict, status: int = 200) -> Response:
    """
    Respond with JSON and CORS headers to the client
    """
    resp = jsonify(data)
    resp.status_code = status
    resp.headers.update(CORS_HEADERS)
    return resp


def error_response(err: ProxyError) -> Response:
    log_error(err)
    return respond_with(err.to_dict(), status=err.status_code)


def preflight_response(methods: str = 'GET, OPTIONS') -> Response:
    """
    Answer a CORS preflight request
    """
    resp = Response(status=204)
    resp.headers.update(CORS_HEADERS)
    resp.headers['Access-Control-Allow-Methods'] = methods
    return resp


def with_cors(resp: Response, methods: str = 'GET, OPTIONS') -> Response:
    resp.headers.update(CORS_HEADERS)
    resp.headers['Access-Control-Allow-Methods'] = methods
    return resp
