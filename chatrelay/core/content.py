"""Normalization of OpenAI multi-part message content."""

import base64
import binascii
import re
import secrets
import string
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

from .exceptions import InvalidContentError

# Heuristic token cost charged for each image part
IMAGE_TOKEN_PENALTY = 85

# Per-message overhead used when sizing whole messages
MESSAGE_TOKEN_OVERHEAD = 2

DEFAULT_IMAGE_FILENAME = "downloaded_image.jpg"

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.IGNORECASE | re.DOTALL)
_FILENAME_ALPHABET = string.ascii_lowercase + string.digits


def _iter_parts(content: Any) -> Iterable[Mapping[str, Any]]:
    if not isinstance(content, list):
        return []
    return [part for part in content if isinstance(part, Mapping)]


def extract_text(content: Any) -> str:
    """Return the plain text of a message's content.

    Strings pass through unchanged. Part lists contribute every non-empty
    ``text`` part, joined with newlines. Anything else yields ``""``.
    """
    if isinstance(content, str):
        return content
    texts = []
    for part in _iter_parts(content):
        text = part.get("text")
        if part.get("type") == "text" and isinstance(text, str) and text:
            texts.append(text)
    return "\n".join(texts)


def image_url_of(part: Mapping[str, Any]) -> str:
    """Return the url of an ``image_url`` part, or ``""``."""
    if part.get("type") != "image_url":
        return ""
    image_url = part.get("image_url")
    if isinstance(image_url, Mapping):
        url = image_url.get("url")
    else:
        url = image_url
    return url if isinstance(url, str) else ""


def has_image(content: Any) -> bool:
    return any(image_url_of(part) for part in _iter_parts(content))


def estimate_tokens(content: Any) -> int:
    """Cheap, deterministic size estimate: words plus a flat cost per image."""
    text = extract_text(content).strip()
    words = len(text.split()) if text else 0
    images = sum(1 for part in _iter_parts(content) if part.get("type") == "image_url")
    return words + images * IMAGE_TOKEN_PENALTY


def estimate_message_tokens(messages: Iterable[Mapping[str, Any]]) -> int:
    total = 0
    for message in messages:
        total += estimate_tokens(message.get("content")) + MESSAGE_TOKEN_OVERHEAD
    return total


def random_token(length: int = 6, alphabet: str = _FILENAME_ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def extension_for_mime(mime: str | None) -> str:
    if not mime:
        return ".png"
    mime = mime.lower()
    if "jpeg" in mime or "jpg" in mime:
        return ".jpg"
    if "png" in mime:
        return ".png"
    if "gif" in mime:
        return ".gif"
    if "webp" in mime:
        return ".webp"
    return ".png"


def decode_data_url(url: str) -> tuple[bytes, str]:
    """Decode a ``data:<mime>;base64,<payload>`` URL.

    Returns the raw bytes and a generated filename whose extension follows the
    declared MIME type.

    Raises:
        InvalidContentError: if the URL is not a base64 data URL or the
            payload does not decode.
    """
    match = _DATA_URL_RE.match(url or "")
    if not match:
        raise InvalidContentError("Invalid data URL")
    mime, payload = match.group(1), match.group(2)
    # Line-wrapped payloads are valid; any other stray character is not
    compact = "".join(payload.split())
    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidContentError(f"Invalid base64 payload in data URL: {exc}") from exc
    if not data:
        raise InvalidContentError("Data URL carries an empty payload")
    filename = f"{random_token(6)}_image{extension_for_mime(mime)}"
    return data, filename


def filename_from_url(url: str) -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        return DEFAULT_IMAGE_FILENAME
    name = path.rsplit("/", 1)[-1] if path else ""
    return name or DEFAULT_IMAGE_FILENAME
