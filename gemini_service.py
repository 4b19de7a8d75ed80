import logging
import re
from typing import Optional

from google.genai import types
from pydantic import BaseModel

from api.prompts import build_classification_prompt, build_verification_prompt
from exceptions import OracleMalformedReplyError, OracleUnreachableError, ValidationError
from media_normalizer import read_video_info
from models import Classification, normalize_classification

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

MAX_VIDEO_SIZE = 100 * 1024 * 1024  # 100MB
MAX_VIDEO_DURATION = 30.0  # seconds

DEFAULT_REJECTION_REASON = "The disposal could not be verified. Please try again with a clearer video."

_BRACKET_TOKEN_RE = re.compile(r"\[(.*?)\]", re.DOTALL)
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT_RE = re.compile(r"^\s*\$?\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_YES_RE = re.compile(r"^\[\s*yes\s*\]", re.IGNORECASE)
_NO_RE = re.compile(r"^\[\s*no\s*\]\s*(.*)$", re.IGNORECASE | re.DOTALL)


class ClassificationResult(BaseModel):
    score: int = 0
    resaleValue: float = 0.0
    classification: Classification = Classification.WASTE
    disposalInstructions: str = ""
    rawReply: str = ""


class VerificationVerdict(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    rawReply: str = ""


# --- Reply parsing ---

def _leading_int(token):
    match = _LEADING_INT_RE.match(token or "")
    return int(match.group(1)) if match else None


def _leading_float(token):
    match = _LEADING_FLOAT_RE.match(token or "")
    return float(match.group(1)) if match else None


def parse_classification_reply(text) -> ClassificationResult:
    """
    Parses "[score] [resale value] [classification] [instructions]".
    Never raises: anything missing or unparseable falls back to the safest defaults
    (score 0, resale 0, Waste, no instructions).
    """
    text = text or ""
    tokens = _BRACKET_TOKEN_RE.findall(text)
    if len(tokens) < 4:
        error = OracleMalformedReplyError(f"Expected 4 bracketed fields, got {len(tokens)}")
        logger.warning(f"Classification reply absorbed into defaults: {error} - raw reply: {text[:200]!r}")

    score = _leading_int(tokens[0]) if len(tokens) > 0 else None
    resale = _leading_float(tokens[1]) if len(tokens) > 1 else None
    label = tokens[2] if len(tokens) > 2 else None
    instructions = tokens[3].strip() if len(tokens) > 3 else ""

    return ClassificationResult(
        score=min(max(score or 0, 0), 100),
        resaleValue=max(resale or 0.0, 0.0),
        classification=normalize_classification(label),
        disposalInstructions=instructions,
        rawReply=text,
    )


def parse_verification_reply(text) -> VerificationVerdict:
    """
    "[YES]" accepts. "[NO] reason" rejects with the reason. Any other shape rejects
    with the raw reply as the reason.
    """
    reply = (text or "").strip()
    if _YES_RE.match(reply):
        return VerificationVerdict(accepted=True, rawReply=reply)

    no_match = _NO_RE.match(reply)
    if no_match:
        reason = no_match.group(1).strip()
    else:
        logger.warning(f"Verification reply did not start with [YES] or [NO]: {reply[:200]!r}")
        reason = reply
    return VerificationVerdict(accepted=False, reason=reason or DEFAULT_REJECTION_REASON, rawReply=reply)


# --- Oracle calls ---

def _generate(client, model, contents):
    try:
        response = client.models.generate_content(model=model, contents=contents)
    except Exception as e:
        logger.error(f"Gemini request failed: {e}", exc_info=True)
        raise OracleUnreachableError(f"Could not reach the AI service: {e}") from e
    return response.text or ""


def classify_item(client, image_bytes, mime_type, description=None, model=DEFAULT_MODEL) -> ClassificationResult:
    """Sends a normalized image to Gemini and parses the bracketed classification reply."""
    contents = [
        types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
        build_classification_prompt(description),
    ]
    reply = _generate(client, model, contents)
    logger.info(f"Classification reply: {reply[:300]}")
    return parse_classification_reply(reply)


def check_verification_video(mime_type, size, duration):
    """Pre-flight checks; raises ValidationError with a user-facing reason."""
    if not mime_type or not mime_type.startswith('video/'):
        raise ValidationError("Please upload a video file (MP4, MOV, etc.), not an image or other file type.")
    if size > MAX_VIDEO_SIZE:
        raise ValidationError("Video file is too large. Please upload a video smaller than 100MB.")
    if duration > MAX_VIDEO_DURATION:
        raise ValidationError(
            f"Video is too long. Please upload a video shorter than {int(MAX_VIDEO_DURATION)} seconds.",
            details={"duration": round(duration, 2)},
        )


def validate_verification_video(video_bytes, mime_type):
    """Runs the cheap checks first, then decodes metadata for the duration check."""
    check_verification_video(mime_type, len(video_bytes), 0.0)
    info = read_video_info(video_bytes)
    check_verification_video(mime_type, len(video_bytes), info.duration)
    return info


def verify_disposal(client, video_bytes, video_mime, image_bytes, image_mime, instructions,
                    model=DEFAULT_MODEL) -> VerificationVerdict:
    """Asks Gemini whether the video shows the item being disposed of per its instructions."""
    contents = [
        types.Part.from_bytes(data=video_bytes, mime_type=video_mime),
        types.Part.from_bytes(data=image_bytes, mime_type=image_mime),
        build_verification_prompt(instructions),
    ]
    reply = _generate(client, model, contents)
    logger.info(f"Verification reply: {reply[:300]}")
    return parse_verification_reply(reply)
