"""WordPress REST publish target authenticated with an application password."""

from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import json
import logging
import re
import time
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ..config import Settings
from ..errors import PipelineError, ProviderError, TransportError

LOGGER = logging.getLogger("mednews.delivery.wordpress")


@dataclass(frozen=True)
class WordPressConfig:
    """Connection settings for the WordPress REST API."""

    base_url: str
    username: str
    app_password: str
    timeout_s: float = 30.0
    retries: int = 2
    backoff_base_s: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "WordPressConfig | None":
        if not (settings.wordpress_url and settings.wordpress_username and settings.wordpress_app_password):
            return None
        return cls(
            base_url=settings.wordpress_url.rstrip("/"),
            username=settings.wordpress_username,
            app_password=settings.wordpress_app_password,
        )


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _wp_error_message(body: bytes, status: int) -> str:
    text = body.decode("utf-8", errors="replace")
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return f"HTTP {status}: {text[:300]}"
    if isinstance(decoded, dict) and decoded.get("message"):
        return str(decoded["message"])
    return f"HTTP {status}: {text[:300]}"


class WordPressPublisher:
    """Creates posts, categories and media through ``/wp-json/wp/v2``."""

    def __init__(self, config: WordPressConfig) -> None:
        self._config = config
        token = base64.b64encode(f"{config.username}:{config.app_password}".encode("utf-8")).decode("ascii")
        self._auth_header = f"Basic {token}"

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def create_document(
        self,
        *,
        title: str,
        body: str,
        status: str,
        author: int | None = None,
        category_ids: Sequence[int] = (),
        metadata: Mapping[str, object] | None = None,
    ) -> int:
        payload: dict[str, object] = {"title": title, "content": body, "status": status}
        if author is not None:
            payload["author"] = author
        if category_ids:
            payload["categories"] = list(category_ids)
        if metadata:
            payload["meta"] = {key: value if isinstance(value, (str, int, float)) else json.dumps(value) for key, value in metadata.items()}

        post = self._request_json("POST", "/posts", payload)
        document_id = int(post["id"])
        LOGGER.info("Created WordPress post %s with status %s", document_id, status)
        return document_id

    def update_document_status(self, document_id: int, status: str) -> None:
        self._request_json("POST", f"/posts/{document_id}", {"status": status})

    def get_permalink(self, document_id: int) -> str:
        post = self._request_json("GET", f"/posts/{document_id}")
        return str(post.get("link") or "")

    def set_featured_media(self, document_id: int, media_id: int) -> None:
        self._request_json("POST", f"/posts/{document_id}", {"featured_media": media_id})

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def ensure_category(self, name: str) -> int | None:
        """Return the id of the category with this name's slug, creating it if needed."""

        if not name.strip():
            return None
        slug = _slugify(name)
        existing = self._request_json("GET", f"/categories?{urlencode({'slug': slug})}")
        if isinstance(existing, list) and existing:
            return int(existing[0]["id"])
        created = self._request_json("POST", "/categories", {"name": name.strip(), "slug": slug})
        return int(created["id"])

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def upload_media(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str = "image/jpeg",
        alt_text: str = "",
        post_id: int | None = None,
        caption: str = "",
    ) -> int:
        media = self._request_json(
            "POST",
            "/media",
            raw=data,
            headers={
                "Content-Type": content_type,
                "Content-Disposition": f'attachment; filename="{filename}"',
            },
        )
        media_id = int(media["id"])

        details: dict[str, object] = {"alt_text": alt_text}
        if post_id is not None:
            details["post"] = post_id
        if caption:
            details["caption"] = caption
        self._request_json("POST", f"/media/{media_id}", details)
        return media_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request_json(
        self,
        method: str,
        path: str,
        payload: Mapping[str, object] | None = None,
        *,
        raw: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        url = f"{self._config.base_url}/wp-json/wp/v2{path}"
        request_headers = {"Authorization": self._auth_header, "Accept": "application/json"}
        data = raw
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            request_headers["Content-Type"] = "application/json"
        request_headers.update(headers or {})

        body = self._request_with_retry(Request(url, data=data, headers=request_headers, method=method), path=path)
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderError(f"WordPress returned invalid JSON for {path}") from exc

    def _request_with_retry(self, request: Request, *, path: str) -> bytes:
        attempt = 0
        while True:
            try:
                with urlopen(request, timeout=self._config.timeout_s) as response:  # noqa: S310
                    return response.read()
            except HTTPError as exc:
                error: PipelineError = ProviderError(_wp_error_message(exc.read() or b"", exc.code), status=exc.code)
                if exc.code < 500 or attempt >= self._config.retries:
                    raise error from exc
            except (URLError, TimeoutError, OSError) as exc:
                error = TransportError(f"WordPress request to {path} failed: {exc}")
                if attempt >= self._config.retries:
                    raise error from exc

            LOGGER.debug(
                "WordPress '%s' attempt %d/%d failed: %s",
                path,
                attempt + 1,
                self._config.retries + 1,
                error,
            )
            time.sleep(self._config.backoff_base_s * (2**attempt))
            attempt += 1
