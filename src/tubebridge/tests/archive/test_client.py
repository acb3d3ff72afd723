"""Tests for the archive client against a local aiohttp server."""

import logging

import pytest
from aiohttp import web
from aiohttp import test_utils

from tubebridge.archive.client import ArchiveClient
from tubebridge.archive.models import EntryAction, PlaylistType

VIDEO = {
    "youtube_id": "video123",
    "title": "A video",
    "description": "desc",
    "published": "2024-03-01T10:00:00",
    "vid_thumb_url": "/cache/videos/video123.jpg",
    "tags": ["one", "two"],
    "channel": {
        "channel_id": "UC1",
        "channel_name": "Channel One",
        "channel_tags": False,
    },
    "player": {"duration": 600, "watched": True, "position": 42.5},
}


def _playlist(playlist_id, kind="custom"):
    return {
        "playlist_id": playlist_id,
        "playlist_name": f"Playlist {playlist_id}",
        "playlist_type": kind,
        "playlist_entries": [
            {"youtube_id": "a", "title": "A", "uploader": "U", "idx": 0, "downloaded": True},
        ],
    }


def _page(number, last_page, ids):
    return {
        "data": [_playlist(i) for i in ids],
        "paginate": {"page_size": 2, "page_from": (number - 1) * 2, "current_page": number,
                     "last_page": last_page, "total_hits": 6, "next_pages": []},
    }


class FakeArchive:
    """Records requests and serves canned responses."""

    def __init__(self):
        self.requests = []
        self.failing_pages = set()
        self.app = web.Application()
        routes = self.app.router
        routes.add_get('/api/video/{video_id}/', self.video)
        routes.add_get('/api/channel/{channel_id}/', self.channel)
        routes.add_get('/api/ping/', self.ping)
        routes.add_post('/api/video/{video_id}/progress/', self.record)
        routes.add_post('/api/watched/', self.record)
        routes.add_get('/api/playlist/', self.playlists)
        routes.add_post('/api/playlist/custom/', self.create_playlist)
        routes.add_post('/api/playlist/custom/{playlist_id}/', self.record)
        routes.add_delete('/api/playlist/{playlist_id}/', self.delete_playlist)
        routes.add_get('/old/api/ping/', self.moved)

    async def video(self, request):
        if request.match_info['video_id'] != "video123":
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(VIDEO)

    async def channel(self, request):
        return web.json_response({"channel_id": request.match_info['channel_id'],
                                  "channel_name": "Channel One", "channel_tags": "oops"})

    async def ping(self, request):
        self.requests.append(('GET', request.path, request.headers.get('Authorization')))
        return web.json_response({"response": "pong", "user": 1, "version": "v0.5.0"})

    async def moved(self, request):
        raise web.HTTPMovedPermanently('/api/ping/')

    async def record(self, request):
        self.requests.append((request.method, request.path, await request.json()))
        return web.json_response({})

    async def playlists(self, request):
        page = int(request.query.get('page', 1))
        if page in self.failing_pages:
            return web.json_response({"error": "boom"}, status=500)
        ids = [f"p{page}a", f"p{page}b"]
        return web.json_response(_page(page, 3, ids))

    async def create_playlist(self, request):
        body = await request.json()
        data = _playlist("new1")
        data["playlist_name"] = body["playlist_name"]
        data["playlist_entries"] = []
        return web.json_response(data)

    async def delete_playlist(self, request):
        return web.Response(status=204)


@pytest.fixture
async def fake_archive():
    fake = FakeArchive()
    server = test_utils.TestServer(fake.app)
    await server.start_server()
    fake.url = str(server.make_url('/'))
    yield fake
    await server.close()


@pytest.fixture
async def client(fake_archive):
    async with ArchiveClient(fake_archive.url, "secret") as client:
        yield client


async def test_get_video(client):
    video = await client.get_video("video123")
    assert video.youtube_id == "video123"
    assert video.tags == ["one", "two"]
    assert video.channel.id == "UC1"
    assert video.channel.tags == []
    assert video.player.is_watched is True
    assert video.player.position == 42.5
    assert video.published.year == 2024


async def test_get_missing_video_returns_none(client):
    assert await client.get_video("missing") is None


async def test_get_progress_comes_from_video(client):
    progress = await client.get_progress("video123")
    assert progress.position == 42.5


async def test_channel_tags_tolerate_non_lists(client):
    channel = await client.get_channel("UC1")
    assert channel.name == "Channel One"
    assert channel.tags == []


async def test_ping_sends_token(client, fake_archive):
    response = await client.ping()
    assert response.response == "pong"
    assert response.user == 1
    assert fake_archive.requests[-1][2] == "Token secret"


async def test_update_api_key(client, fake_archive):
    client.update_api_key("rotated")
    await client.ping()
    assert fake_archive.requests[-1][2] == "Token rotated"


async def test_redirect_is_followed(fake_archive):
    async with ArchiveClient(fake_archive.url + "old", "secret") as client:
        response = await client.ping()
    assert response is not None
    assert response.version == "v0.5.0"


async def test_set_progress_and_watched(client, fake_archive):
    assert await client.set_progress("video123", 42) == 200
    assert await client.set_watched_status("video123", True) == 200
    assert fake_archive.requests == [
        ('POST', '/api/video/video123/progress/', {'position': 42}),
        ('POST', '/api/watched/', {'id': 'video123', 'is_watched': True}),
    ]


async def test_write_failure_logs_critical(client, caplog):
    with caplog.at_level(logging.CRITICAL):
        status = await client.set_progress("missing/extra/path", 1)
    assert status == 404
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


async def test_unreachable_host_returns_status_zero():
    async with ArchiveClient("http://127.0.0.1:1", "secret", timeout=2) as client:
        assert await client.set_watched_status("video123", True) == 0
        assert await client.get_video("video123") is None
        assert await client.ping() is None


async def test_pagination_merges_pages_in_order(client):
    listing = await client.fetch_playlists()
    assert listing.complete is True
    assert listing.pages == 3
    assert [p.id for p in listing.playlists] == ["p1a", "p1b", "p2a", "p2b", "p3a", "p3b"]
    assert listing.playlists[0].type == PlaylistType.CUSTOM
    assert listing.playlists[0].entry_ids == ["a"]


async def test_pagination_failure_returns_partial(client, fake_archive, caplog):
    fake_archive.failing_pages = {2}
    with caplog.at_level(logging.CRITICAL):
        listing = await client.fetch_playlists()
    assert listing.complete is False
    assert [p.id for p in listing.playlists] == ["p1a", "p1b"]
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)
    assert await client.list_playlists() is not None


async def test_first_page_failure_returns_none(client, fake_archive):
    fake_archive.failing_pages = {1}
    assert await client.fetch_playlists() is None
    assert await client.list_playlists() is None


async def test_create_custom_playlist(client):
    playlist = await client.create_custom_playlist("Favourites")
    assert playlist.id == "new1"
    assert playlist.name == "Favourites"
    assert playlist.entries == []


async def test_entry_action_body(client, fake_archive):
    assert await client.apply_playlist_entry_action("new1", EntryAction.UP, "abc") == 200
    assert fake_archive.requests[-1] == (
        'POST', '/api/playlist/custom/new1/', {'action': 'up', 'video_id': 'abc'})


async def test_delete_playlist(client):
    assert await client.delete_playlist("new1") is True
