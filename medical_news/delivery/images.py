"""Topical imagery for publish-ready articles: Unsplash search with a DALL-E fallback."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import re
from typing import Any, Protocol
import uuid
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from openai import OpenAI, OpenAIError

from ..config import Settings

LOGGER = logging.getLogger("mednews.delivery.images")

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"

# Checked in order; the first category with a keyword present in the text wins.
MEDICAL_CATEGORIES: dict[str, tuple[str, ...]] = {
    "cardiology": ("heart", "cardiac", "cardiovascular", "blood pressure", "coronary"),
    "oncology": ("cancer", "tumor", "oncology", "chemotherapy", "radiation"),
    "neurology": ("brain", "neurology", "alzheimer", "parkinson", "stroke"),
    "diabetes": ("diabetes", "insulin", "glucose", "blood sugar"),
    "respiratory": ("lung", "respiratory", "asthma", "copd", "breathing"),
    "mental_health": ("depression", "anxiety", "mental health", "psychiatric"),
    "orthopedic": ("bone", "joint", "arthritis", "osteoporosis"),
    "general": ("medicine", "health", "medical", "treatment", "therapy"),
}

SEARCH_TERMS: dict[str, tuple[str, tuple[str, ...]]] = {
    "cardiology": ("heart health medical illustration", ("stethoscope", "ECG monitor", "healthy lifestyle")),
    "oncology": ("medical research laboratory", ("microscope", "medical test tubes", "laboratory equipment")),
    "neurology": ("brain scan medical", ("medical imaging", "doctor consultation", "neuroscience")),
    "diabetes": ("diabetes medical care", ("healthy food", "medical check up", "blood glucose meter")),
    "respiratory": ("respiratory health", ("doctor with stethoscope", "medical examination", "lung health")),
    "mental_health": ("mental health support", ("therapy session", "meditation wellness", "mental wellbeing")),
    "orthopedic": ("orthopedic medical care", ("x-ray medical", "physical therapy", "joint health")),
    "general": ("medical research", ("doctor consultation", "medical equipment", "healthcare professionals")),
}

ILLUSTRATION_SUBJECTS: dict[str, str] = {
    "cardiology": "anatomical heart diagram with clean medical style, no people",
    "neurology": "brain anatomy illustration in medical textbook style, no people",
    "diabetes": "medical equipment for diabetes care, glucose meter and supplies, no people",
    "oncology": "medical research laboratory with microscopes and test equipment, no people",
    "respiratory": "respiratory system anatomical illustration, medical diagram style, no people",
    "general": "modern medical laboratory with equipment and charts, no people visible",
}

_PEOPLE_PATTERN = re.compile(r"\b(patient|person|man|woman|face|people|individual)s?\b", re.IGNORECASE)


@dataclass(frozen=True)
class Image:
    url: str
    alt_text: str
    source: str
    credit: str = ""
    credit_url: str = ""
    width: int | None = None
    height: int | None = None
    download_location: str = ""


@dataclass(frozen=True)
class ArticleImages:
    featured: Image | None = None
    content: list[Image] = field(default_factory=list)


@dataclass(frozen=True)
class ImageKeywords:
    category: str
    primary: str
    secondary: tuple[str, ...]


class MediaTarget(Protocol):
    def upload_media(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str = "image/jpeg",
        alt_text: str = "",
        post_id: int | None = None,
        caption: str = "",
    ) -> int: ...

    def set_featured_media(self, document_id: int, media_id: int) -> None: ...


def extract_image_keywords(headline: str, category: str | None, content: str) -> ImageKeywords:
    text = f"{headline} {category or ''} {content}".lower()
    detected = "general"
    for name, keywords in MEDICAL_CATEGORIES.items():
        if any(keyword in text for keyword in keywords):
            detected = name
            break
    primary, secondary = SEARCH_TERMS.get(detected, SEARCH_TERMS["general"])
    return ImageKeywords(category=detected, primary=primary, secondary=secondary)


def shows_people(result: dict[str, Any]) -> bool:
    described = f"{result.get('description') or ''} {result.get('alt_description') or ''}"
    return bool(_PEOPLE_PATTERN.search(described))


def select_image(results: list[dict[str, Any]]) -> dict[str, Any] | None:
    """First result without people in its description, else the first result."""

    if not results:
        return None
    for result in results:
        if not shows_people(result):
            return result
    return results[0]


def _image_from_unsplash(result: dict[str, Any]) -> Image | None:
    urls = result.get("urls") or {}
    url = urls.get("regular") or urls.get("full")
    if not url:
        return None
    user = result.get("user") or {}
    return Image(
        url=url,
        alt_text=result.get("alt_description") or "Medical illustration",
        source="unsplash",
        credit=user.get("name") or "Unknown",
        credit_url=(user.get("links") or {}).get("html") or "",
        width=result.get("width"),
        height=result.get("height"),
        download_location=(result.get("links") or {}).get("download_location") or "",
    )


def illustration_prompt(category: str) -> str:
    subject = ILLUSTRATION_SUBJECTS.get(category, ILLUSTRATION_SUBJECTS["general"])
    return (
        f"A professional medical illustration showing {subject}. "
        "Clean, professional, medical illustration style. No faces or identifiable people."
    )


class ImageService:
    """Best-effort image lookup; every failure is logged and yields no image."""

    def __init__(
        self,
        *,
        unsplash_access_key: str = "",
        openai_api_key: str = "",
        image_model: str = "dall-e-3",
        timeout_s: float = 30.0,
    ) -> None:
        self.unsplash_access_key = unsplash_access_key
        self.openai_api_key = openai_api_key
        self.image_model = image_model
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "ImageService":
        return cls(
            unsplash_access_key=settings.unsplash_access_key,
            openai_api_key=settings.openai_api_key,
            image_model=settings.openai_image_model_id,
        )

    def get_article_images(self, headline: str, category: str | None, content: str, *, content_count: int = 2) -> ArticleImages:
        keywords = extract_image_keywords(headline, category, content)

        featured = self.search_unsplash(keywords.primary, featured=True)
        if featured is None:
            featured = self.generate_illustration(keywords.category)

        content_images: list[Image] = []
        for query in keywords.secondary[:content_count]:
            image = self.search_unsplash(query, featured=False)
            if image is not None:
                content_images.append(image)

        return ArticleImages(featured=featured, content=content_images)

    def search_unsplash(self, query: str, *, featured: bool) -> Image | None:
        if not self.unsplash_access_key:
            return None

        params = {
            "query": query,
            "per_page": 5,
            "orientation": "landscape" if featured else "squarish",
            "content_filter": "high",
            "order_by": "relevant",
        }
        request = Request(
            f"{UNSPLASH_SEARCH_URL}?{urlencode(params)}",
            headers={"Authorization": f"Client-ID {self.unsplash_access_key}", "Accept-Version": "v1"},
        )
        try:
            with urlopen(request, timeout=self.timeout_s) as response:  # noqa: S310
                payload = json.loads(response.read().decode("utf-8"))
        except (URLError, TimeoutError, OSError, ValueError) as error:
            LOGGER.warning("Unsplash search for '%s' failed: %s", query, error)
            return None

        selected = select_image(list(payload.get("results") or []))
        return _image_from_unsplash(selected) if selected is not None else None

    def generate_illustration(self, category: str) -> Image | None:
        if not self.openai_api_key:
            return None

        client = OpenAI(api_key=self.openai_api_key, timeout=60.0)
        try:
            response = client.images.generate(
                model=self.image_model,
                prompt=illustration_prompt(category),
                n=1,
                size="1024x1024",
                quality="standard",
                style="natural",
            )
        except OpenAIError as error:
            LOGGER.warning("Illustration generation failed: %s", error)
            return None

        data = getattr(response, "data", None) or []
        url = getattr(data[0], "url", None) if data else None
        if not url:
            return None
        return Image(url=url, alt_text="AI-generated medical illustration", source="dall-e", width=1024, height=1024)

    def attach(self, image: Image, document_id: int, *, is_featured: bool, publisher: MediaTarget) -> int | None:
        """Download the image, upload it to the publish target and optionally feature it."""

        try:
            with urlopen(Request(image.url), timeout=self.timeout_s) as response:  # noqa: S310
                data = response.read()
                content_type = response.headers.get_content_type() if response.headers else "image/jpeg"
        except (URLError, TimeoutError, OSError) as error:
            LOGGER.warning("Could not download image %s: %s", image.url, error)
            return None
        if not data:
            return None

        caption = f"Photo by {image.credit} on Unsplash" if image.source == "unsplash" and image.credit else ""
        try:
            media_id = publisher.upload_media(
                data,
                filename=f"medical-{document_id}-{uuid.uuid4().hex[:12]}.jpg",
                content_type=content_type or "image/jpeg",
                alt_text=image.alt_text,
                post_id=document_id,
                caption=caption,
            )
            if is_featured:
                publisher.set_featured_media(document_id, media_id)
        except Exception as error:  # noqa: BLE001
            LOGGER.warning("Could not attach image to document %s: %s", document_id, error)
            return None

        if image.download_location:
            self._track_download(image.download_location)
        return media_id

    def _track_download(self, download_location: str) -> None:
        request = Request(download_location, headers={"Authorization": f"Client-ID {self.unsplash_access_key}"})
        try:
            with urlopen(request, timeout=10.0):  # noqa: S310
                pass
        except (URLError, TimeoutError, OSError) as error:
            LOGGER.debug("Unsplash download tracking failed: %s", error)
