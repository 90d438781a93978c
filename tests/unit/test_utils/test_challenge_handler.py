"""Unit tests for CAPTCHA detection and the manual-login wait loop."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from bandcrawl.utils.challenge_handler import detect_captcha, is_captcha_page, wait_for_login_markers


def make_page(matching_selector=None, body_text=""):
    page = MagicMock()

    def locator(selector):
        loc = MagicMock()
        loc.count = AsyncMock(return_value=1 if selector == matching_selector else 0)
        return loc

    page.locator.side_effect = locator
    page.inner_text = AsyncMock(return_value=body_text)
    return page


class TestDetectCaptcha:

    @pytest.mark.asyncio
    async def test_selector_match(self):
        page = make_page(matching_selector="iframe[src*='recaptcha']")
        assert await detect_captcha(page) == "recaptcha_iframe"

    @pytest.mark.asyncio
    async def test_text_marker(self):
        page = make_page(body_text="보안문자를 입력해 주세요")
        assert await detect_captcha(page) == "text:보안문자"

    @pytest.mark.asyncio
    async def test_text_marker_case_insensitive(self):
        page = make_page(body_text="Please solve the CAPTCHA")
        assert await detect_captcha(page) == "text:captcha"

    @pytest.mark.asyncio
    async def test_clean_page(self):
        page = make_page(body_text="밴드 홈")
        assert await detect_captcha(page) is None
        assert not await is_captcha_page(page)

    @pytest.mark.asyncio
    async def test_unreadable_page(self):
        page = make_page()
        page.inner_text = AsyncMock(side_effect=Exception("page closed"))
        assert await detect_captcha(page) is None


class TestWaitForLoginMarkers:

    @pytest.mark.asyncio
    async def test_returns_true_once_logged_in(self):
        sleep = AsyncMock()
        is_logged_in = AsyncMock(side_effect=[False, False, True])

        assert await wait_for_login_markers(object(), 30, 300, is_logged_in, sleep=sleep)
        assert sleep.await_count == 3
        sleep.assert_awaited_with(30)

    @pytest.mark.asyncio
    async def test_times_out(self):
        sleep = AsyncMock()
        is_logged_in = AsyncMock(return_value=False)

        assert not await wait_for_login_markers(object(), 30, 300, is_logged_in, sleep=sleep)
        assert sleep.await_count == 10
        assert is_logged_in.await_count == 10

    @pytest.mark.asyncio
    async def test_zero_budget_never_checks(self):
        is_logged_in = AsyncMock(return_value=True)
        assert not await wait_for_login_markers(object(), 30, 0, is_logged_in, sleep=AsyncMock())
        is_logged_in.assert_not_awaited()
