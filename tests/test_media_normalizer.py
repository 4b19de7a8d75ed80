import base64
import io

import pytest
from PIL import Image

import media_normalizer
from exceptions import MediaDecodeError
from media_normalizer import (
    MAX_DIMENSION,
    decode_data_uri,
    load_image_reference,
    normalize_image,
    read_video_info,
    target_size,
)
from tests.conftest import make_image_bytes


class FakeCapture:
    """Stands in for cv2.VideoCapture over a file of known metadata."""

    def __init__(self, props, opened=True):
        self.props = props
        self.opened = opened
        self.released = False

    def isOpened(self):
        return self.opened

    def get(self, prop):
        return self.props.get(prop, 0)

    def release(self):
        self.released = True


@pytest.fixture
def fake_capture(monkeypatch):
    holder = {}

    def install(props=None, opened=True):
        cap = FakeCapture(props or {}, opened)
        holder['capture'] = cap
        monkeypatch.setattr(media_normalizer.cv2, "VideoCapture", lambda path: cap)
        return cap

    return install


def _open(data):
    return Image.open(io.BytesIO(data))


def test_target_size_caps_longer_edge():
    assert target_size(1600, 1200) == (800, 600)
    assert target_size(1200, 1600) == (600, 800)
    assert target_size(4000, 10) == (800, 2)


def test_target_size_never_upscales():
    assert target_size(640, 480) == (640, 480)
    assert target_size(800, 800) == (800, 800)


def test_normalize_large_image_downscaled_to_jpeg():
    result = normalize_image(make_image_bytes(2000, 1000))

    assert result.mime_type == "image/jpeg"
    assert (result.width, result.height) == (MAX_DIMENSION, 400)
    with _open(result.data) as img:
        assert img.format == "JPEG"
        assert img.size == (800, 400)


def test_normalize_small_image_keeps_size():
    result = normalize_image(make_image_bytes(120, 90, fmt='JPEG'))
    assert (result.width, result.height) == (120, 90)


def test_normalize_flattens_transparency():
    result = normalize_image(make_image_bytes(50, 50, mode='RGBA', color=(0, 0, 0, 0)))
    with _open(result.data) as img:
        assert img.mode == "RGB"
        # Fully transparent pixels land on the white background.
        assert all(channel > 240 for channel in img.getpixel((25, 25)))


def test_normalize_rejects_garbage_and_empty_input():
    with pytest.raises(MediaDecodeError):
        normalize_image(b"definitely not an image")
    with pytest.raises(MediaDecodeError):
        normalize_image(b"")


def test_normalize_rejects_truncated_image():
    data = make_image_bytes(300, 300, fmt='JPEG')
    with pytest.raises(MediaDecodeError):
        normalize_image(data[:len(data) // 3])


def test_data_uri_decodes_back_to_image_bytes():
    normalized = normalize_image(make_image_bytes(30, 20))

    assert normalized.data_uri.startswith("data:image/jpeg;base64,")
    data, mime = decode_data_uri(normalized.data_uri)
    assert data == normalized.data
    assert mime == "image/jpeg"


def test_decode_data_uri_rejects_plain_urls():
    with pytest.raises(MediaDecodeError):
        decode_data_uri("https://example.com/a.jpg")
    with pytest.raises(MediaDecodeError):
        decode_data_uri(None)


def test_decode_data_uri_without_mime_defaults_to_jpeg():
    payload = base64.b64encode(b"abc").decode()
    assert decode_data_uri(f"data:;base64,{payload}") == (b"abc", "image/jpeg")


class FakeResponse:
    def __init__(self, content=b"", status_code=200, headers=None):
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise media_normalizer.requests.HTTPError(f"{self.status_code} Client Error")


def test_load_image_reference_decodes_data_uri(monkeypatch):
    monkeypatch.setattr(media_normalizer.requests, "get", lambda *a, **kw: pytest.fail("no fetch expected"))
    payload = base64.b64encode(b"abc").decode()

    assert load_image_reference(f"data:image/png;base64,{payload}") == (b"abc", "image/png")


def test_load_image_reference_fetches_url(monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse(b"\xff\xd8jpeg", headers={"Content-Type": "image/webp; charset=binary"})

    monkeypatch.setattr(media_normalizer.requests, "get", fake_get)

    data, mime = load_image_reference("https://cdn.example.com/item.webp")

    assert (data, mime) == (b"\xff\xd8jpeg", "image/webp")
    assert calls == [("https://cdn.example.com/item.webp", media_normalizer.IMAGE_FETCH_TIMEOUT)]


def test_load_image_reference_url_without_content_type(monkeypatch):
    monkeypatch.setattr(media_normalizer.requests, "get", lambda url, timeout: FakeResponse(b"img"))
    assert load_image_reference("http://example.com/a") == (b"img", "image/jpeg")


def test_load_image_reference_http_error(monkeypatch):
    monkeypatch.setattr(media_normalizer.requests, "get", lambda url, timeout: FakeResponse(status_code=404))
    with pytest.raises(MediaDecodeError, match="Could not fetch"):
        load_image_reference("https://example.com/gone.jpg")


def test_load_image_reference_connection_error(monkeypatch):
    def fake_get(url, timeout):
        raise media_normalizer.requests.ConnectionError("dns failure")

    monkeypatch.setattr(media_normalizer.requests, "get", fake_get)
    with pytest.raises(MediaDecodeError):
        load_image_reference("https://example.com/a.jpg")


def test_load_image_reference_rejects_other_schemes():
    with pytest.raises(MediaDecodeError):
        load_image_reference("ftp://example.com/a.jpg")
    with pytest.raises(MediaDecodeError):
        load_image_reference(None)


def test_read_video_info_reads_duration(fake_capture):
    cv2 = media_normalizer.cv2
    cap = fake_capture({
        cv2.CAP_PROP_FPS: 30.0,
        cv2.CAP_PROP_FRAME_COUNT: 450,
        cv2.CAP_PROP_FRAME_WIDTH: 1280,
        cv2.CAP_PROP_FRAME_HEIGHT: 720,
    })

    info = read_video_info(b"\x00\x00\x00\x18ftypmp42")

    assert info.duration == pytest.approx(15.0)
    assert (info.width, info.height, info.frame_count) == (1280, 720, 450)
    assert cap.released


def test_read_video_info_unreadable(fake_capture):
    fake_capture(opened=False)
    with pytest.raises(MediaDecodeError, match="Error reading video file"):
        read_video_info(b"not a video")


def test_read_video_info_without_frame_rate(fake_capture):
    fake_capture({media_normalizer.cv2.CAP_PROP_FRAME_COUNT: 100})
    with pytest.raises(MediaDecodeError):
        read_video_info(b"video")


def test_read_video_info_empty():
    with pytest.raises(MediaDecodeError):
        read_video_info(b"")

