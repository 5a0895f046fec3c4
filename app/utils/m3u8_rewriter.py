"""
Rewrites the URIs inside an HLS playlist so the player fetches them back
through the proxy.
"""

import re
from urllib.parse import quote, urljoin

from app.utils.common_utils import is_segment_url

ASSET_PROXY_PATH = '/proxy/asset'
HLS_PROXY_PATH = '/proxy/hls'

URI_ATTRIBUTE = re.compile(r'URI="([^"]+)"')


def proxy_url(path: str, url: str) -> str:
    return f"{path}?url={quote(url, safe='')}"


def rewrite_m3u8(content: str, source_url: str, should_proxy,
                 asset_path: str = ASSET_PROXY_PATH, hls_path: str = HLS_PROXY_PATH) -> str:
    """
    Rewrite every URI referenced by a playlist
    :param content: The playlist body
    :param source_url: The URL the playlist was fetched from; relative URIs resolve against it
    :param should_proxy: ``(absolute_url) -> bool``, whether an URL is routed through the proxy
    :return: The playlist with segments on the asset route and playlists and keys on the HLS route.
             URIs that are not proxied are made absolute.
    """

    def rewrite_attribute(match):
        absolute_url = urljoin(source_url, match.group(1).strip())
        if should_proxy(absolute_url):
            return f'URI="{proxy_url(hls_path, absolute_url)}"'
        return f'URI="{absolute_url}"'

    lines = []
    for line in content.split('\n'):
        stripped = line.strip()

        if not stripped:
            lines.append(line)
        elif stripped.startswith('#'):
            if 'URI="' in line:
                line = URI_ATTRIBUTE.sub(rewrite_attribute, line)
            lines.append(line)
        else:
            absolute_url = urljoin(source_url, stripped)
            if not should_proxy(absolute_url):
                lines.append(absolute_url)
            elif is_segment_url(absolute_url):
                lines.append(proxy_url(asset_path, absolute_url))
            else:
                lines.append(proxy_url(hls_path, absolute_url))

    return '\n'.join(lines)
