import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import mongomock
import pytest
import requests

from moodvibe.agents.models import Song
from moodvibe.app.auth import AuthService
from moodvibe.app.users import UserStore


def chat_completion(content):
    """Builds an object shaped like an OpenAI chat completion."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


def openai_client_returning(payload):
    client = MagicMock()
    content = payload if isinstance(payload, str) or payload is None else json.dumps(payload)
    client.chat.completions.create.return_value = chat_completion(content)
    return client


def http_response(payload=None, error=None):
    resp = MagicMock()
    resp.json.return_value = payload
    if error is not None:
        resp.raise_for_status.side_effect = error
    return resp


def http_error(status_code):
    return requests.HTTPError(f"{status_code} Server Error")


def spotify_track(track_id, name, artist, images=None, preview_url=None):
    return {
        "id": track_id,
        "name": name,
        "artists": [{"name": artist}] if artist else [],
        "album": {"name": f"{name} (Album)", "images": images or []},
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "preview_url": preview_url,
    }


def make_song(song_id, name, artist):
    return Song(
        id=song_id,
        name=name,
        artist=artist,
        album="Album",
        spotify_url=f"https://open.spotify.com/track/{song_id}",
    )


@pytest.fixture
def user_store():
    collection = mongomock.MongoClient().db.users
    store = UserStore(collection)
    store.ensure_indexes()
    return store


@pytest.fixture
def auth_service(user_store):
    return AuthService(user_store, secret="test-secret", bcrypt_rounds=4)
