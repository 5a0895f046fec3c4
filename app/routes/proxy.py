"""
Proxy endpoints for embedded players, their assets and HLS streams.
Upstream hosts are resolved over DNS-over-HTTPS and fetched from the
resolved address, so local DNS blocks do not apply.
"""

import asyncio
import logging
import time
from urllib.parse import urlparse

import aiohttp
import requests
from flask import Blueprint, request, Response, redirect, url_for
from werkzeug.exceptions import HTTPException

from app import routes
from app.routes.utils import error_response, preflight_response, with_cors
from app.utils.common_utils import (get_random_agent, guess_content_type, is_playlist_content_type,
                                    is_playlist_url, is_segment_url)
from app.utils.errors import BadRequest, FetchFailure, PolicyViolation, ProxyError, UpstreamStatusError
from app.utils.html_rewriter import RewriteContext, rewrite_html
from app.utils.m3u8_rewriter import rewrite_m3u8
from app.utils.pinned_client import FetchResult, decompress_body, origin_of
from app.utils.redirects import RedirectWalker, absolute_location
from config import Config

proxy_bp = Blueprint('proxy', __name__)

EMBED_HEADERS = {
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
    'X-Frame-Options': 'ALLOWALL',
    'Content-Security-Policy': "default-src * 'unsafe-inline' 'unsafe-eval' data: blob:; "
                               "script-src * 'unsafe-inline' 'unsafe-eval' blob:; worker-src * blob:; "
                               "style-src * 'unsafe-inline'; img-src * data: blob:; media-src * data: blob:; "
                               "connect-src *; frame-src *;",
    'Cache-Control': 'no-cache',
}
PASSTHROUGH_METHODS = 'GET, POST, OPTIONS'
ERROR_EXCERPT = 500


@proxy_bp.before_request
def answer_preflight():
    if request.method == 'OPTIONS':
        if request.endpoint == 'proxy.proxy_passthrough':
            return preflight_response(PASSTHROUGH_METHODS)
        return preflight_response()


@proxy_bp.errorhandler(ProxyError)
def handle_proxy_error(err: ProxyError):
    return error_response(err)


@proxy_bp.errorhandler(Exception)
def handle_unexpected_error(err: Exception):
    if isinstance(err, HTTPException):
        return err
    logging.exception(f"[Proxy] Unexpected error for {request.args.get('url')}")
    return error_response(ProxyError(str(err), url=request.args.get('url')))


def get_target_url() -> str:
    """The ``url`` query parameter, checked to be an absolute http(s) URL."""
    url = request.args.get('url', '').strip()
    if not url:
        raise BadRequest('Missing url parameter')
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        raise BadRequest(f'Invalid url: {url}', url=url)
    if parsed.scheme not in ('http', 'https') or not hostname:
        raise BadRequest(f'Invalid url: {url}', url=url)
    return url


def get_walker() -> RedirectWalker:
    return RedirectWalker(routes.dns_resolver, routes.fetcher, max_hops=Config.MAX_REDIRECTS)


def get_deadline() -> float:
    return time.monotonic() + Config.REQUEST_DEADLINE


def external_path(endpoint: str) -> str:
    """Absolute URL of one of our routes, as seen by the browser."""
    return f"{Config.PROTOCOL}://{request.host}{url_for(endpoint)}"


def raise_for_upstream_status(result):
    if result.status != 200:
        details = result.text[:ERROR_EXCERPT] if result.decoded else None
        logging.error(f"[Proxy] Upstream returned {result.status} for {result.url}")
        raise UpstreamStatusError(result.status, details=details, url=result.url)


def passthrough_response(result, content_type: str, cache_control: str) -> Response:
    """Body as received; a Content-Encoding that was not undone travels with it."""
    resp = Response(result.body, status=200, content_type=content_type)
    if not result.decoded:
        resp.headers['Content-Encoding'] = result.headers['content-encoding']
    resp.headers['Cache-Control'] = cache_control
    return with_cors(resp)


async def fetch_from_cdn(url: str) -> FetchResult | None:
    """Public CDNs are rarely blocked, so they get a plain fetch first. Redirects are reported, not followed."""
    headers = {'User-Agent': get_random_agent('chrome'), 'Accept': '*/*'}
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=Config.FETCH_TIMEOUT)) as session:
            async with session.get(url, headers=headers, allow_redirects=False) as response:
                body = await response.read()
                response_headers = {k.lower(): v for k, v in response.headers.items()}
                status = response.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logging.warning(f"[Asset Proxy] Direct CDN fetch failed for {url}, retrying over resolved DNS: {e!r}")
        return None

    redirect_location = response_headers.get('location') if 300 <= status < 400 else None
    return FetchResult(url=url, status=status, body=body, headers=response_headers,
                       redirect_location=redirect_location)


def asset_response(url: str, result: FetchResult, cache_control: str) -> Response:
    """Turn one asset fetch into the route's answer; a redirect goes back through this route."""
    if result.is_redirect:
        redirect_url = absolute_location(url, result.redirect_location)
        if not routes.domain_policy.is_asset_allowed(redirect_url):
            raise PolicyViolation(f'Redirect to {urlparse(redirect_url).hostname} is not allowed', url=redirect_url)
        logging.info(f"[Asset Proxy] Redirect {result.status} -> {redirect_url}")
        return with_cors(redirect(url_for('proxy.proxy_asset', url=redirect_url)))

    raise_for_upstream_status(result)
    content_type = result.content_type or guess_content_type(url)
    return passthrough_response(result, content_type, cache_control)


@proxy_bp.route('/proxy/asset', methods=['GET', 'OPTIONS'])
async def proxy_asset():
    """
    Proxy a single asset (script, style, image, font, segment) of an allowed origin.
    Query params:
    - url: The asset URL
    A redirect from upstream is answered with a redirect to this same route.
    """
    url = get_target_url()
    policy = routes.domain_policy
    if not policy.is_asset_allowed(url):
        raise PolicyViolation(f'{urlparse(url).hostname} is not allowed', url=url)

    if policy.is_cdn(url):
        if result := await fetch_from_cdn(url):
            return asset_response(url, result, 'public, max-age=86400')

    result = await get_walker().fetch_once(url, binary=True, deadline=get_deadline())
    return asset_response(url, result, 'public, max-age=3600')


@proxy_bp.route('/proxy/embed', methods=['GET', 'OPTIONS'])
async def proxy_embed():
    """
    Proxy an embeddable player page, rewritten to load its assets through the proxy.
    Query params:
    - url: The page URL
    """
    url = get_target_url()
    policy = routes.domain_policy
    if not policy.is_embeddable(url):
        raise PolicyViolation(f'{urlparse(url).hostname} is not allowed', url=url)

    referer = request.headers.get('Referer') or request.headers.get('Origin') or f"https://{request.host}/"
    result = await get_walker().fetch(url, policy.embed_domains, referer=referer, deadline=get_deadline())
    raise_for_upstream_status(result)

    context = RewriteContext(
        base_origin=origin_of(result.url),
        should_proxy=policy.should_proxy,
        domains=policy.stream_domains,
        asset_path=external_path('proxy.proxy_asset'),
        hls_path=external_path('proxy.proxy_hls'),
    )
    html = rewrite_html(result.text, context)

    resp = Response(html, status=200, content_type='text/html; charset=utf-8')
    with_cors(resp)
    resp.headers.update(EMBED_HEADERS)
    return resp


@proxy_bp.route('/proxy/hls', methods=['GET', 'OPTIONS'])
async def proxy_hls():
    """
    Proxy an HLS playlist or segment.
    Query params:
    - url: The playlist or segment URL
    Playlists come back rewritten, segments as they are.
    """
    url = get_target_url()
    policy = routes.domain_policy
    if not policy.should_proxy(url):
        raise PolicyViolation(f'{urlparse(url).hostname} is not allowed', url=url)

    result = await get_walker().fetch(url, policy.stream_domains, referer=Config.DEFAULT_REFERER,
                                      binary=is_segment_url(url), deadline=get_deadline())
    raise_for_upstream_status(result)

    if not (is_playlist_url(url) or is_playlist_url(result.url) or is_playlist_content_type(result.content_type)):
        return passthrough_response(result, 'video/mp2t', 'public, max-age=3600')

    body = result.body
    if not result.decoded:
        body, _ = decompress_body(body, result.headers.get('content-encoding'))
    playlist = rewrite_m3u8(body.decode('utf-8', errors='replace'), result.url, policy.should_proxy,
                            asset_path=url_for('proxy.proxy_asset'), hls_path=url_for('proxy.proxy_hls'))

    resp = Response(playlist, status=200, content_type='application/vnd.apple.mpegurl')
    resp.headers['Cache-Control'] = 'no-cache'
    return with_cors(resp)


@proxy_bp.route('/proxy', methods=['GET', 'POST', 'OPTIONS'])
def proxy_passthrough():
    """
    Generic proxy for plain resources (posters, API calls) of allowed domains.
    Uses the system resolver.
    Query params:
    - url: The resource URL
    """
    url = get_target_url()
    if not routes.domain_policy.is_passthrough_allowed(url):
        raise PolicyViolation(f'{urlparse(url).hostname} is not allowed', url=url)

    headers = {
        'User-Agent': get_random_agent('chrome'),
        'Accept': '*/*',
        'Accept-Language': 'pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7',
        'Referer': origin_of(url),
    }

    try:
        if request.method == 'POST':
            headers['Content-Type'] = request.headers.get('Content-Type', 'application/json')
            response = requests.post(url, data=request.get_data(), headers=headers,
                                     timeout=Config.FETCH_TIMEOUT, allow_redirects=False)
        else:
            response = requests.get(url, headers=headers, timeout=Config.FETCH_TIMEOUT, allow_redirects=False)
    except requests.exceptions.RequestException as e:
        logging.error(f"[Proxy] Passthrough error for {url}: {e}")
        raise FetchFailure(str(e), url=url)

    if response.is_redirect and request.method == 'GET':
        redirect_url = absolute_location(url, response.headers['Location'])
        if not routes.domain_policy.is_passthrough_allowed(redirect_url):
            raise PolicyViolation(f'Redirect to {urlparse(redirect_url).hostname} is not allowed', url=redirect_url)
        return with_cors(redirect(url_for('proxy.proxy_passthrough', url=redirect_url)), PASSTHROUGH_METHODS)

    default_type = 'application/json' if request.method == 'POST' else 'application/octet-stream'
    content_type = response.headers.get('Content-Type', default_type)
    resp = Response(response.content, status=response.status_code, content_type=content_type)
    if request.method == 'GET' and 'text/html' not in content_type:
        resp.headers['Cache-Control'] = 'public, max-age=3600'
    return with_cors(resp, PASSTHROUGH_METHODS)
