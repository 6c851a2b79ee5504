"""Offloading of oversized turns and images to the upstream asset service.

The search upstream accepts the whole conversation on the query string and
has a small context window. Text that is too large is uploaded as a ``.txt``
file and replaced in the outgoing payload by a short back-reference telling
the model to read that file. Images are always uploaded and referenced from
the ``sources`` list.

Uploads happen one at a time, in turn order, so the ``sources`` list is
deterministic for a given conversation.
"""

import json
import logging
import string
from dataclasses import dataclass
from typing import Any, Mapping, MutableSequence, Optional, Sequence

import httpx

from .content import (
    decode_data_url,
    estimate_tokens,
    filename_from_url,
    image_url_of,
    random_token,
)
from .exceptions import UpstreamError
from .history import ChatTurn
from .upstream_transport import create_async_client

logger = logging.getLogger("chatrelay")

DEFAULT_HISTORY_THRESHOLD = 30
DEFAULT_QUERY_CEILING = 2000
DEFAULT_ASSET_TIMEOUT = 60.0
DEFAULT_NONCE_PATH = "/api/get_nonce"
DEFAULT_UPLOAD_PATH = "/api/upload"
DEFAULT_REFERENCE_TEMPLATE = "查看这个文件并且直接与文件内容进行聊天：{name}.txt"

UTF8_BOM = b"\xef\xbb\xbf"


@dataclass
class UploadedAsset:
    """A file stored by the upstream, referenced from the ``sources`` list."""

    storage_filename: str
    user_filename: str
    size_bytes: int
    source_type: str = "user_file"

    def to_source(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type,
            "filename": self.storage_filename,
            "user_filename": self.user_filename,
            "size_bytes": self.size_bytes,
        }


def _is_allowed(code_point: int) -> bool:
    return (
        32 <= code_point <= 126
        or 0x4E00 <= code_point <= 0x9FA5
        or 0x3000 <= code_point <= 0x303F
        or code_point in (0x0A, 0x0D)
    )


def sanitize_text(text: str) -> str:
    """Replace every character outside the upstream's safe set with a space."""
    return "".join(ch if _is_allowed(ord(ch)) else " " for ch in text or "")


def encode_with_bom(text: str) -> bytes:
    return UTF8_BOM + sanitize_text(text).encode("utf-8")


def random_filename() -> str:
    return random_token(6, string.ascii_lowercase)


def strip_extension(filename: str) -> str:
    stem, dot, _ext = filename.rpartition(".")
    return stem if dot and stem else filename


def back_reference(user_filename: str, template: str = DEFAULT_REFERENCE_TEMPLATE) -> str:
    return template.format(name=strip_extension(user_filename))


class AssetClient:
    """HTTP client for the upstream's nonce and file-upload endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        nonce_path: str = DEFAULT_NONCE_PATH,
        upload_path: str = DEFAULT_UPLOAD_PATH,
        timeout: float = DEFAULT_ASSET_TIMEOUT,
        http2: bool = False,
    ) -> None:
        base = base_url.rstrip("/")
        self.nonce_url = f"{base}{nonce_path}"
        self.upload_url = f"{base}{upload_path}"
        self.timeout = timeout
        self.http2 = http2

    @staticmethod
    def _auth_headers(credential: str) -> dict[str, str]:
        return {"Cookie": f"DS={credential}"}

    async def get_nonce(self, credential: str) -> str:
        async with create_async_client(self.nonce_url, self.timeout, http2=self.http2) as client:
            resp = await client.get(self.nonce_url, headers=self._auth_headers(credential))
        resp.raise_for_status()
        return resp.text.strip()

    async def upload(self, credential: str, data: bytes, filename: str) -> UploadedAsset:
        """Upload ``data`` as a multipart file.

        Raises:
            UpstreamError: on transport failure, non-success status, or an
                unparseable response body.
        """
        files = {"file": (filename, data, "application/octet-stream")}
        try:
            async with create_async_client(self.upload_url, self.timeout, http2=self.http2) as client:
                resp = await client.post(
                    self.upload_url, headers=self._auth_headers(credential), files=files
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"File upload failed: {exc.__class__.__name__}: {exc}"
            ) from exc

        logger.info("File upload status %s for %s (%d bytes)", resp.status_code, filename, len(data))
        if not resp.is_success:
            logger.warning("File upload error body: %s", resp.text)
            raise UpstreamError(
                f"File upload failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=resp.content,
                content_type=resp.headers.get("content-type"),
            )
        try:
            parsed = resp.json()
            asset = UploadedAsset(
                storage_filename=str(parsed["filename"]),
                user_filename=str(parsed["user_filename"]),
                size_bytes=len(data),
            )
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise UpstreamError(
                f"File upload returned an unexpected body: {resp.text[:200]}",
                status_code=502,
                body=resp.content,
            ) from exc
        logger.info(
            "Uploaded file: filename=%s, user_filename=%s",
            asset.storage_filename,
            asset.user_filename,
        )
        return asset


class ContextOffloader:
    """Keeps the outgoing payload within the upstream's context budget."""

    def __init__(
        self,
        assets: AssetClient,
        *,
        history_threshold: int = DEFAULT_HISTORY_THRESHOLD,
        query_ceiling: int = DEFAULT_QUERY_CEILING,
        reference_template: str = DEFAULT_REFERENCE_TEMPLATE,
        download_timeout: float = DEFAULT_ASSET_TIMEOUT,
    ) -> None:
        self.assets = assets
        self.history_threshold = history_threshold
        self.query_ceiling = query_ceiling
        self.reference_template = reference_template
        self.download_timeout = download_timeout

    async def _warm_up(self, credential: str) -> None:
        try:
            await self.assets.get_nonce(credential)
        except Exception as exc:  # best-effort; the upload proceeds regardless
            logger.debug("Nonce request failed (ignored): %s", exc)

    async def offload_text(
        self,
        text: str,
        credential: str,
        sources: MutableSequence[dict[str, Any]],
    ) -> str:
        """Upload ``text`` unconditionally and return its back-reference."""
        await self._warm_up(credential)
        filename = f"{random_filename()}.txt"
        asset = await self.assets.upload(credential, encode_with_bom(text), filename)
        # Reported size is the text's character length, not the encoded size
        asset.size_bytes = len(text)
        sources.append(asset.to_source())
        return back_reference(asset.user_filename, self.reference_template)

    async def maybe_offload(
        self,
        text: str,
        role: str,
        credential: str,
        sources: MutableSequence[dict[str, Any]],
        threshold: Optional[int] = None,
    ) -> str:
        """Offload ``text`` when its estimated size reaches ``threshold``."""
        limit = self.history_threshold if threshold is None else threshold
        if not text:
            return text
        tokens = estimate_tokens(text)
        if tokens < limit:
            return text
        logger.info("Offloading %s text (%d tokens >= %d)", role, tokens, limit)
        return await self.offload_text(text, credential, sources)

    async def offload_history(
        self,
        turns: Sequence[ChatTurn],
        credential: str,
        sources: MutableSequence[dict[str, Any]],
    ) -> list[ChatTurn]:
        compacted: list[ChatTurn] = []
        for turn in turns:
            question = await self.maybe_offload(turn.question, "user", credential, sources)
            answer = await self.maybe_offload(turn.answer, "assistant", credential, sources)
            compacted.append(ChatTurn(question, answer))
        return compacted

    async def _download(self, url: str) -> tuple[bytes, str]:
        try:
            async with create_async_client(url, self.download_timeout) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Image download failed: {exc}") from exc
        if not resp.is_success:
            raise UpstreamError(
                f"Image download failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp.content, filename_from_url(url)

    async def upload_images(
        self,
        content: Any,
        credential: str,
        sources: MutableSequence[dict[str, Any]],
    ) -> None:
        """Upload every image part of ``content`` in order."""
        if not isinstance(content, list):
            return
        for part in content:
            if not isinstance(part, Mapping):
                continue
            url = image_url_of(part)
            if not url:
                continue
            if url.startswith("data:"):
                data, filename = decode_data_url(url)
            else:
                data, filename = await self._download(url)
            asset = await self.assets.upload(credential, data, filename)
            sources.append(asset.to_source())
