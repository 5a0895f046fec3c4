import os

from dotenv import load_dotenv

load_dotenv()


def _domains(name: str, default: list) -> list:
    value = os.getenv(name)
    if not value:
        return default
    return [domain.strip().lower() for domain in value.split(',') if domain.strip()]


class Config:
    """
    Configuration class
    """
    FLASK_HOST = os.getenv('FLASK_RUN_HOST', "localhost")
    FLASK_PORT = os.getenv('FLASK_RUN_PORT', "5000")
    DEBUG = os.getenv('FLASK_DEBUG', False)

    # DNS over HTTPS
    DOH_URL = os.getenv('DOH_URL', "https://1.1.1.1/dns-query")
    DNS_TIMEOUT = float(os.getenv('DNS_TIMEOUT', 5))
    DNS_MIN_TTL = int(os.getenv('DNS_MIN_TTL', 60))

    # Upstream fetches
    FETCH_TIMEOUT = float(os.getenv('FETCH_TIMEOUT', 15))
    MAX_REDIRECTS = int(os.getenv('MAX_REDIRECTS', 5))
    REQUEST_DEADLINE = float(os.getenv('REQUEST_DEADLINE', 45))
    VERIFY_TLS = os.getenv('VERIFY_TLS', True) not in ["0", False, "False", "false"]
    DEFAULT_REFERER = os.getenv('DEFAULT_REFERER', "https://superflix.app/")
    USE_PROXY = os.getenv('USE_PROXY', True) not in ["0", False, "False", "false"]

    # Allow-lists
    EMBED_DOMAINS = _domains('EMBED_DOMAINS', [
        'superflixapi.run',
        'superflixapi.buzz',
        'superflixapi.top',
        'embedtv.best',
        'www1.embedtv.best',
    ])
    STREAM_DOMAINS = _domains('STREAM_DOMAINS', EMBED_DOMAINS + [
        'cdn.superflixapi.run',
        'stream.superflixapi.run',
    ])
    CDN_DOMAINS = _domains('CDN_DOMAINS', [
        'cdn.jsdelivr.net',
        'cdnjs.cloudflare.com',
        'unpkg.com',
    ])
    PASSTHROUGH_DOMAINS = _domains('PASSTHROUGH_DOMAINS', [
        'superflixapi.run',
        'superflixapi.top',
        'embedtv.best',
        'www1.embedtv.best',
        'image.tmdb.org',
    ])

    # Env dependent configs
    if DEBUG in ["1", True, "True"]:  # Local development
        PROTOCOL = "http"
    else:  # Production environment
        PROTOCOL = "https"
