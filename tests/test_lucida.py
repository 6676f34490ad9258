import os

import pytest
import responses

from youflac.httpclient import HTTPClient
from youflac.lucida import LUCIDA_API_PATH, LucidaService
from youflac.tracks import DownloadError

EP1 = "http://lucida-one.test"
EP2 = "http://lucida-two.test"
FILES = "http://files.test"


def success_json(download_url):
    return {
        "success": True,
        "track": {
            "id": "track123",
            "title": "Test Track",
            "artist": "Test Artist",
            "album": "Test Album",
            "duration": 240.0,
            "isrc": "USABC1234567",
            "platform": "tidal",
        },
        "formats": [
            {"format": "flac", "quality": "lossless", "size": 1024, "url": download_url},
            {"format": "mp3", "quality": "320kbps", "size": 512, "url": download_url},
        ],
    }


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


def service(*endpoints, proxy_client=None):
    return LucidaService(client=HTTPClient(), proxy_client=proxy_client, endpoints=endpoints)


def test_name():
    assert service(EP1).name == "lucida"


def test_supports_format():
    svc = service(EP1)
    assert svc.supports_format("FLAC")
    assert svc.supports_format("ogg")
    assert not svc.supports_format("opus")


def test_is_available_up(rsps):
    rsps.add(responses.HEAD, EP1, status=200)
    assert service(EP1).is_available() is True


def test_is_available_server_error(rsps):
    rsps.add(responses.HEAD, EP1, status=503)
    assert service(EP1).is_available() is False


def test_is_available_falls_back_to_second(rsps):
    rsps.add(responses.HEAD, EP1, status=500)
    rsps.add(responses.HEAD, EP2, status=200)
    assert service(EP1, EP2).is_available() is True


def test_is_available_all_endpoints_fail(rsps):
    rsps.add(responses.HEAD, EP1, status=500)
    rsps.add(responses.HEAD, EP2, status=500)
    assert service(EP1, EP2).is_available() is False


def test_is_available_connection_error(rsps):
    assert service(EP1).is_available() is False


def test_get_track_info_success(rsps):
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, json=success_json("http://example.com/file.flac"))
    info = service(EP1).get_track_info("https://tidal.com/browse/track/12345")
    assert info.title == "Test Track"
    assert info.artist == "Test Artist"
    assert info.isrc == "USABC1234567"
    assert info.duration == 240.0
    assert rsps.calls[0].request.method == "POST"
    assert "url=https" in rsps.calls[0].request.body


def test_get_track_info_api_error(rsps):
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, json={"success": False, "error": "track not found"})
    with pytest.raises(DownloadError, match="API error"):
        service(EP1).get_track_info("https://tidal.com/browse/track/99999")


def test_get_track_info_all_endpoints_fail(rsps):
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, status=500)
    rsps.add(responses.POST, EP2 + LUCIDA_API_PATH, status=500)
    with pytest.raises(DownloadError, match="all lucida endpoints failed"):
        service(EP1, EP2).get_track_info("https://tidal.com/browse/track/1")


def test_get_track_info_endpoint_fallback(rsps):
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, status=503)
    rsps.add(responses.POST, EP2 + LUCIDA_API_PATH, json=success_json("http://example.com/file.flac"))
    info = service(EP1, EP2).get_track_info("https://tidal.com/browse/track/1")
    assert info.title == "Test Track"


def test_forbidden_retried_through_proxy_client(rsps):
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, status=403, body="forbidden")
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, json=success_json("http://example.com/f.flac"))
    info = service(EP1, proxy_client=HTTPClient()).get_track_info("https://tidal.com/browse/track/1")
    assert info.artist == "Test Artist"


def test_forbidden_without_proxy_client_fails(rsps):
    rsps.add(responses.POST, EP1 + LUCIDA_API_PATH, status=403, body="forbidden")
    with pytest.raises(DownloadError, match="all lucida endpoints failed"):
        service(EP1).get_track_info("https://tidal.com/browse/track/1")


def api_with_formats(rsps, formats):
    rsps.add(
        responses.POST,
        EP1 + LUCIDA_API_PATH,
        json={
            "success": True,
            "track": {"id": "1", "title": "Test Track", "artist": "Test Artist"},
            "formats": formats,
        },
    )


def test_download_exact_format_match(rsps, tmp_path):
    rsps.add(responses.GET, FILES + "/file.flac", body=b"fake flac binary content")
    rsps.add(responses.GET, FILES + "/file.mp3", body=b"fake mp3")
    api_with_formats(rsps, [
        {"format": "flac", "quality": "lossless", "size": 100, "url": FILES + "/file.flac"},
        {"format": "mp3", "quality": "320kbps", "size": 50, "url": FILES + "/file.mp3"},
    ])
    result = service(EP1).download("https://tidal.com/browse/track/1", str(tmp_path), "flac")
    assert result.format.lower() == "flac"
    assert result.track.quality == "lossless"
    assert result.file_path.endswith(".flac")


def test_download_fallback_from_flac(rsps, tmp_path):
    rsps.add(responses.GET, FILES + "/file.mp3", body=b"fake mp3 content")
    api_with_formats(rsps, [
        {"format": "mp3", "quality": "320kbps", "size": 50, "url": FILES + "/file.mp3"},
    ])
    result = service(EP1).download("https://tidal.com/browse/track/1", str(tmp_path), "flac")
    assert result.format.lower() == "mp3"


def test_download_missing_format_raises(rsps, tmp_path):
    api_with_formats(rsps, [
        {"format": "mp3", "quality": "320kbps", "size": 50, "url": FILES + "/file.mp3"},
    ])
    with pytest.raises(DownloadError, match="format wav not available"):
        service(EP1).download("https://tidal.com/browse/track/1", str(tmp_path), "wav")


def test_download_writes_to_output_dir(rsps, tmp_path):
    content = b"binary flac data 0xFLAC"
    rsps.add(responses.GET, FILES + "/song.flac", body=content)
    rsps.add(
        responses.POST,
        EP1 + LUCIDA_API_PATH,
        json={
            "success": True,
            "track": {"id": "1", "title": "Song", "artist": "Band"},
            "formats": [{"format": "flac", "quality": "lossless", "size": 100, "url": FILES + "/song.flac"}],
        },
    )
    out_dir = str(tmp_path / "out")
    result = service(EP1).download("https://tidal.com/browse/track/1", out_dir, "flac")
    assert result.file_path.startswith(out_dir)
    with open(result.file_path, "rb") as handle:
        assert handle.read() == content
    assert result.size == len(content)


def test_download_server_error_leaves_no_file(rsps, tmp_path):
    rsps.add(responses.GET, FILES + "/gone.flac", status=404)
    api_with_formats(rsps, [
        {"format": "flac", "quality": "lossless", "size": 100, "url": FILES + "/gone.flac"},
    ])
    with pytest.raises(DownloadError, match="download server returned 404"):
        service(EP1).download("https://tidal.com/browse/track/1", str(tmp_path), "flac")
    assert os.listdir(tmp_path) == []