"""
Builds the player URLs the front-end embeds.
"""

from urllib.parse import quote

from config import Config

PLAYER_BASE_URL = "https://superflixapi.buzz"
TV_PLAYER_URL = "https://embedtv.best/player.php"


def get_embed_proxy_url(url: str, use_proxy: bool = None) -> str:
    if not (Config.USE_PROXY if use_proxy is None else use_proxy):
        return url
    return f"/proxy/embed?url={quote(url, safe='')}"


def get_player_url(content_type: str, content_id, season: int = None, episode: int = None,
                   use_proxy: bool = None) -> str:
    """
    Get the player URL for a movie or an episode
    :param content_type: 'movie' or 'tv'
    :param content_id: IMDb id for movies (tt1234567), TMDB id for series
    :param season: Season number, series only
    :param episode: Episode number, series only
    :return: The embed proxy URL, or the bare player URL when proxying is off
    """
    if content_type == 'movie':
        player_url = f"{PLAYER_BASE_URL}/filme/{content_id}"
    elif content_type == 'tv':
        if season is None or episode is None:
            raise ValueError("Season and episode are required for series")
        player_url = f"{PLAYER_BASE_URL}/serie/{content_id}/{season}/{episode}"
    else:
        raise ValueError(f"Unknown content type: {content_type}")
    return get_embed_proxy_url(player_url, use_proxy)


def get_tv_player_url(channel_id: str, use_proxy: bool = None) -> str:
    player_url = f"{TV_PLAYER_URL}?id={quote(str(channel_id), safe='')}"
    return get_embed_proxy_url(player_url, use_proxy)
