from flask import Blueprint, request

from app.routes.utils import respond_with
from app.utils.player_urls import get_player_url, get_tv_player_url

player_bp = Blueprint('player', __name__)


def use_proxy_arg():
    value = request.args.get('proxy')
    if value is None:
        return None
    return value not in ('0', 'false', 'False')


@player_bp.route('/player/movie/<content_id>')
def movie_player(content_id: str):
    """
    Player URL for a movie
    :param content_id: IMDb id of the movie
    :return: JSON response
    """
    return respond_with({'url': get_player_url('movie', content_id, use_proxy=use_proxy_arg())})


@player_bp.route('/player/tv/<content_id>/<int:season>/<int:episode>')
def episode_player(content_id: str, season: int, episode: int):
    """
    Player URL for an episode of a series
    :param content_id: TMDB id of the series
    :return: JSON response
    """
    return respond_with({'url': get_player_url('tv', content_id, season, episode, use_proxy=use_proxy_arg())})


@player_bp.route('/player/channel/<channel_id>')
def channel_player(channel_id: str):
    """
    Player URL for a live TV channel
    """
    return respond_with({'url': get_tv_player_url(channel_id, use_proxy=use_proxy_arg())})
