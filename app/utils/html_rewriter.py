"""
Rewrites a fetched HTML page so the assets it references on allow-listed
hosts load through the proxy.

This works on ``src=``/``href=`` attribute text with regular expressions.
Values followed by a ``+`` are taken to be JavaScript string concatenation
and left alone; that check is a heuristic, not a parser. ``srcset`` and CSS
``url()`` references are not rewritten.
"""

import html as html_lib
import re
from dataclasses import dataclass
from urllib.parse import quote, urljoin

from bs4 import BeautifulSoup

from app.utils.interceptor import build_interceptor_script
from app.utils.m3u8_rewriter import ASSET_PROXY_PATH, HLS_PROXY_PATH

ABSOLUTE_ATTRIBUTE = re.compile(r'''(src|href)=(["'])(https?://[^"']+)\2(?!\s*\+)''', re.IGNORECASE)
RELATIVE_ATTRIBUTE = re.compile(
    r'''(src|href)=(["'])(?!https?://|data:|blob:|about:|mailto:|javascript:|#|/proxy/)([^"']+)\2(?!\s*\+)''',
    re.IGNORECASE)
HEAD_TAG = re.compile(r'<head(?:\s[^>]*)?>', re.IGNORECASE)
DOCUMENT_START = re.compile(r'\s*(?:<!DOCTYPE[^>]*>\s*)?(?:<html(?:\s[^>]*)?>)?', re.IGNORECASE)


@dataclass
class RewriteContext:
    base_origin: str
    should_proxy: object
    domains: tuple = ()
    asset_path: str = ASSET_PROXY_PATH
    hls_path: str = HLS_PROXY_PATH

    def asset_url(self, url: str) -> str:
        return f"{self.asset_path}?url={quote(url, safe='')}"


def rewrite_attributes(html: str, context: RewriteContext) -> str:
    """Route allow-listed ``src``/``href`` targets through the asset proxy."""

    def replace_absolute(match):
        attr, quote_char, url = match.groups()
        target = html_lib.unescape(url)
        if context.should_proxy(target):
            return f"{attr}={quote_char}{context.asset_url(target)}{quote_char}"
        return match.group(0)

    def replace_relative(match):
        attr, quote_char, path = match.groups()
        target = urljoin(context.base_origin + '/', html_lib.unescape(path.strip()))
        if context.should_proxy(target):
            return f"{attr}={quote_char}{context.asset_url(target)}{quote_char}"
        return f"{attr}={quote_char}{urljoin(context.base_origin + '/', path.strip())}{quote_char}"

    html = ABSOLUTE_ATTRIBUTE.sub(replace_absolute, html)
    return RELATIVE_ATTRIBUTE.sub(replace_relative, html)


def has_base_tag(html: str) -> bool:
    return BeautifulSoup(html, 'html.parser').find('base') is not None


def inject_into_head(html: str, markup: str) -> str:
    """
    Insert markup right after the opening ``<head>`` tag. Without one, it goes
    after a leading doctype and ``<html>`` tag, so the page stays in standards mode.
    """
    match = HEAD_TAG.search(html) or DOCUMENT_START.match(html)
    return html[:match.end()] + markup + html[match.end():]


def rewrite_html(html: str, context: RewriteContext) -> str:
    """
    Rewrite an HTML document to route allow-listed URLs through the proxy
    :param html: The page as fetched
    :param context: Origin of the page and the proxy routes to point at
    :return: The page with rewritten attributes, the interceptor script and, if it had none, a ``<base>`` tag
    """
    needs_base = not has_base_tag(html)

    html = rewrite_attributes(html, context)
    html = inject_into_head(html, build_interceptor_script(context.domains, context.asset_path, context.hls_path))
    if needs_base:
        html = inject_into_head(html, f'<base href="{context.base_origin}/">')
    return html
