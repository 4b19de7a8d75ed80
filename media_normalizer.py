import base64
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from io import BytesIO

import cv2
import requests
from PIL import Image, UnidentifiedImageError

from exceptions import MediaDecodeError, RenderContextError

logger = logging.getLogger(__name__)

MAX_DIMENSION = 800
JPEG_QUALITY = 60
OUTPUT_MIME_TYPE = "image/jpeg"
IMAGE_FETCH_TIMEOUT = 10

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=.-]+)*?;base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class NormalizedImage:
    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def data_uri(self):
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


@dataclass
class VideoInfo:
    duration: float
    fps: float
    frame_count: int
    width: int
    height: int


def target_size(width, height, max_dimension=MAX_DIMENSION):
    """Clamps the longer edge to max_dimension, keeping the aspect ratio. Never upscales."""
    longer = max(width, height)
    if longer <= max_dimension:
        return width, height
    scale = max_dimension / longer
    return max(1, round(width * scale)), max(1, round(height * scale))


def _render(img):
    """Draws a PIL image onto an RGB canvas at the target size and encodes it as JPEG."""
    try:
        # JPEG has no alpha channel, so transparent sources are flattened onto white.
        if img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info):
            img = img.convert('RGBA')
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel('A'))
            img = background
        elif img.mode != 'RGB':
            img = img.convert('RGB')

        width, height = target_size(*img.size)
        if (width, height) != img.size:
            img = img.resize((width, height), Image.LANCZOS)

        output_buffer = BytesIO()
        img.save(output_buffer, format='JPEG', quality=JPEG_QUALITY)
    except (OSError, ValueError) as e:
        raise RenderContextError(f"Could not render the normalized image: {e}") from e
    return NormalizedImage(output_buffer.getvalue(), OUTPUT_MIME_TYPE, width, height)


def normalize_image(data: bytes) -> NormalizedImage:
    """
    Downscales an arbitrary image so that its longer edge is at most 800px and
    re-encodes it as a quality-60 JPEG.
    """
    if not data:
        raise MediaDecodeError("The uploaded image is empty.")
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            normalized = _render(img)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise MediaDecodeError(f"Failed to load image: {e}") from e
    except OSError as e:
        # Truncated or corrupt files fail inside load() with a bare OSError.
        raise MediaDecodeError(f"Failed to load image: {e}") from e

    logger.info(f"Normalized image to {normalized.width}x{normalized.height} ({len(normalized.data)} bytes)")
    return normalized


def decode_data_uri(uri: str):
    """Splits a base64 data URI into (bytes, mime type)."""
    match = _DATA_URI_RE.match(uri or "")
    if not match:
        raise MediaDecodeError("The stored image is not a base64 data URI.")
    try:
        data = base64.b64decode(match.group('data'), validate=False)
    except ValueError as e:
        raise MediaDecodeError(f"The stored image is not valid base64: {e}") from e
    return data, match.group('mime') or OUTPUT_MIME_TYPE


def load_image_reference(ref: str, timeout=IMAGE_FETCH_TIMEOUT):
    """
    Resolves a stored imageUrl into (bytes, mime type). Inline data URIs are
    decoded; http(s) URLs are downloaded.
    """
    if (ref or "").startswith("data:"):
        return decode_data_uri(ref)
    if not (ref or "").lower().startswith(("http://", "https://")):
        raise MediaDecodeError("The stored image is neither a data URI nor an http(s) URL.")

    try:
        response = requests.get(ref, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise MediaDecodeError(f"Could not fetch the stored image: {e}") from e
    if not response.content:
        raise MediaDecodeError("The stored image URL returned no data.")

    mime = (response.headers.get("Content-Type") or "").split(";")[0].strip() or OUTPUT_MIME_TYPE
    logger.info(f"Fetched stored image from {ref} ({len(response.content)} bytes, {mime})")
    return response.content, mime


class _VideoFile:
    """OpenCV only decodes from a path, so the bytes are spilled into a temp file."""

    def __init__(self, data):
        self.data = data
        self.path = None
        self.capture = None

    def __enter__(self):
        fd, self.path = tempfile.mkstemp(suffix=".video")
        with os.fdopen(fd, 'wb') as f:
            f.write(self.data)
        self.capture = cv2.VideoCapture(self.path)
        if not self.capture.isOpened():
            self.__exit__(None, None, None)
            raise MediaDecodeError("Error reading video file. Please try again.")
        return self.capture

    def __exit__(self, exc_type, exc, tb):
        if self.capture is not None:
            self.capture.release()
        if self.path and os.path.exists(self.path):
            os.remove(self.path)
        return False


def read_video_info(data: bytes) -> VideoInfo:
    """Reads duration and frame geometry from the video container metadata."""
    if not data:
        raise MediaDecodeError("The uploaded video is empty.")
    with _VideoFile(data) as cap:
        fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)

    if fps <= 0 or frame_count <= 0:
        raise MediaDecodeError("Error reading video file. Please try again.")

    info = VideoInfo(duration=frame_count / fps, fps=fps, frame_count=frame_count, width=width, height=height)
    logger.info(f"Video metadata: duration={info.duration:.2f}s, fps={fps:.2f}, frames={frame_count}")
    return info

