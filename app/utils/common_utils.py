"""
Common utilities shared across the application.
"""

import random
from urllib.parse import urlparse

CONTENT_TYPES = {
    '.js': 'application/javascript',
    '.css': 'text/css',
    '.m3u8': 'application/vnd.apple.mpegurl',
    '.ts': 'video/mp2t',
    '.json': 'application/json',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.svg': 'image/svg+xml',
    '.woff': 'font/woff',
    '.woff2': 'font/woff2',
}
DEFAULT_CONTENT_TYPE = 'application/octet-stream'


def get_random_agent(browser: str = None):
    """Get random desktop user agent string."""
    USER_AGENTS_BY_BROWSER = {
        "chrome": [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        ],
        "firefox": [
            "Mozilla/5.0 (X11; Linux x86_64; rv:143.0) Gecko/20100101 Firefox/143.0",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/119.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:109.0) Gecko/20100101 Firefox/119.0",
        ],
    }

    if browser and browser.lower() in USER_AGENTS_BY_BROWSER:
        return random.choice(USER_AGENTS_BY_BROWSER[browser.lower()])

    all_agents = [agent for sublist in USER_AGENTS_BY_BROWSER.values() for agent in sublist]
    return random.choice(all_agents)


def guess_content_type(url: str) -> str:
    """Infer a content type from the URL's path suffix."""
    path = urlparse(url).path.lower()
    for suffix, content_type in CONTENT_TYPES.items():
        if path.endswith(suffix):
            return content_type
    return DEFAULT_CONTENT_TYPE


def is_segment_url(url: str) -> bool:
    """True for MPEG-TS segment URLs (``.ts``, query string allowed)."""
    return urlparse(url).path.lower().endswith('.ts')


def is_playlist_url(url: str) -> bool:
    return '.m3u8' in urlparse(url).path.lower()


def is_playlist_content_type(content_type: str) -> bool:
    return bool(content_type) and 'mpegurl' in content_type.lower()
