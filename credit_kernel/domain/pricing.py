"""
Pricing -- platform detection and task cost quotes.

Responsibility:
    Decides which media platform a URL belongs to and how many credits a
    task costs, before any credits move.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Rules:
    - Subtitle extraction: ``pricing.subtitle_extraction``.
    - TikTok video download: ``pricing.video_download``.
    - Subtitle extraction with translation requested up front:
      extraction + ``pricing.translation``.
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlparse

from credit_kernel.domain.policy import Pricing
from credit_kernel.exceptions import UnsupportedPlatformError


class Platform(str, Enum):
    """Supported media platforms."""

    YOUTUBE = "youtube"
    TIKTOK = "tiktok"


class OutputType(str, Enum):
    """What the user asked the task to produce."""

    SUBTITLE = "subtitle"
    VIDEO = "video"


_PLATFORM_HOSTS: dict[str, Platform] = {
    "youtube.com": Platform.YOUTUBE,
    "youtu.be": Platform.YOUTUBE,
    "tiktok.com": Platform.TIKTOK,
}


def detect_platform(url: str) -> Platform:
    """Map a media URL to its platform by host name (subdomains included).

    Raises:
        UnsupportedPlatformError: If the host is not a supported platform.
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    host = (urlparse(candidate).hostname or "").lower()

    for domain, platform in _PLATFORM_HOSTS.items():
        if host == domain or host.endswith(f".{domain}"):
            return platform
    raise UnsupportedPlatformError(url)


def includes_translation(output_type: OutputType, target_lang: str | None) -> bool:
    """True if a submission with these options is quoted with translation."""
    return bool(target_lang) and output_type != OutputType.VIDEO


def quote_task_cost(
    platform: Platform,
    output_type: OutputType,
    target_lang: str | None,
    pricing: Pricing,
) -> int:
    """Credits charged when a task is submitted."""
    if output_type == OutputType.VIDEO and platform == Platform.TIKTOK:
        return pricing.video_download
    if includes_translation(output_type, target_lang):
        return pricing.subtitle_extraction + pricing.translation
    return pricing.subtitle_extraction
