"""Platform detection and task quotes (pure functions)."""

import pytest

from credit_kernel.domain.policy import Pricing
from credit_kernel.domain.pricing import OutputType, Platform, detect_platform, quote_task_cost
from credit_kernel.exceptions import UnsupportedPlatformError

PRICING = Pricing(subtitle_extraction=10, video_download=15, translation=5)


class TestDetectPlatform:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=abc",
            "https://youtube.com/shorts/abc",
            "https://m.youtube.com/watch?v=abc",
            "https://youtu.be/abc",
            "youtube.com/watch?v=abc",
            "  HTTPS://WWW.YOUTUBE.COM/watch?v=abc  ",
        ],
    )
    def test_youtube(self, url):
        assert detect_platform(url) == Platform.YOUTUBE

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.tiktok.com/@someone/video/123",
            "https://vm.tiktok.com/ZMabc/",
            "tiktok.com/@someone/video/123",
        ],
    )
    def test_tiktok(self, url):
        assert detect_platform(url) == Platform.TIKTOK

    @pytest.mark.parametrize(
        "url",
        [
            "https://vimeo.com/123",
            "https://notyoutube.com/watch?v=abc",
            "https://youtube.com.evil.example/watch",
            "",
            "not a url",
        ],
    )
    def test_unsupported(self, url):
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            detect_platform(url)
        assert exc_info.value.url == url
        assert exc_info.value.code == "UNSUPPORTED_PLATFORM"


class TestQuoteTaskCost:
    def test_subtitle_extraction(self):
        assert quote_task_cost(Platform.YOUTUBE, OutputType.SUBTITLE, None, PRICING) == 10

    def test_subtitle_with_translation(self):
        assert quote_task_cost(Platform.YOUTUBE, OutputType.SUBTITLE, "es", PRICING) == 15

    def test_tiktok_video_download(self):
        assert quote_task_cost(Platform.TIKTOK, OutputType.VIDEO, None, PRICING) == 15

    def test_tiktok_subtitle(self):
        assert quote_task_cost(Platform.TIKTOK, OutputType.SUBTITLE, None, PRICING) == 10

    def test_empty_target_lang_means_no_translation(self):
        assert quote_task_cost(Platform.YOUTUBE, OutputType.SUBTITLE, "", PRICING) == 10

    def test_prices_come_from_pricing(self):
        pricing = Pricing(subtitle_extraction=3, video_download=7, translation=2)
        assert quote_task_cost(Platform.YOUTUBE, OutputType.SUBTITLE, "fr", pricing) == 5
        assert quote_task_cost(Platform.TIKTOK, OutputType.VIDEO, None, pricing) == 7
