"""Unit tests for HumanSimulator."""

import random
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bandcrawl.config import CrawlThresholds
from bandcrawl.utils.human_simulator import (
    HumanSimulator,
    HumanSimulatorConfig,
    create_human_simulator_from_thresholds,
)


def make_page(element=None, field=None):
    page = MagicMock()
    page.query_selector = AsyncMock(return_value=element)
    page.mouse.move = AsyncMock()
    page.mouse.click = AsyncMock()
    page.locator.return_value.first = field if field is not None else make_field(count=0)
    return page


def make_element(box=None):
    element = MagicMock()
    element.click = AsyncMock()
    element.bounding_box = AsyncMock(return_value=box)
    return element


def make_field(count=1):
    field = MagicMock()
    field.count = AsyncMock(return_value=count)
    field.click = AsyncMock()
    field.fill = AsyncMock()
    field.press_sequentially = AsyncMock()
    return field


class TestTypeText:

    @pytest.mark.asyncio
    async def test_types_one_key_at_a_time(self):
        field = make_field()
        simulator = HumanSimulator(rng=random.Random(1))

        with patch("bandcrawl.utils.human_simulator.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            assert await simulator.type_text(make_page(field=field), "#id", "abc")

        assert [c.args[0] for c in field.press_sequentially.await_args_list] == ["a", "b", "c"]
        field.fill.assert_awaited_once_with("")
        assert mock_sleep.await_count == 3
        assert all(0.05 <= c.args[0] <= 0.15 for c in mock_sleep.await_args_list)

    @pytest.mark.asyncio
    async def test_fast_mode_types_whole_string(self):
        field = make_field()
        simulator = HumanSimulator(HumanSimulatorConfig(fast_mode=True))

        assert await simulator.type_text(make_page(field=field), "#pw", "secret")
        field.press_sequentially.assert_awaited_once_with("secret")

    @pytest.mark.asyncio
    async def test_missing_input(self):
        page = make_page()
        assert not await HumanSimulator().type_text(page, "#id", "abc")
        page.locator.assert_called_once_with("#id")


class TestStepPause:

    @pytest.mark.asyncio
    async def test_pause_within_range(self):
        simulator = HumanSimulator(rng=random.Random(7))
        with patch("bandcrawl.utils.human_simulator.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            duration = await simulator.step_pause("test")

        assert 2.0 <= duration <= 4.0
        mock_sleep.assert_awaited_once_with(duration)

    @pytest.mark.asyncio
    async def test_fast_mode_skips(self):
        simulator = HumanSimulator(HumanSimulatorConfig(fast_mode=True))
        assert await simulator.step_pause() == 0.0


class TestClickElement:

    @pytest.mark.asyncio
    async def test_click_near_center(self):
        element = make_element(box={"x": 100, "y": 200, "width": 40, "height": 20})
        page = make_page(element)
        simulator = HumanSimulator(rng=random.Random(3))

        with patch("bandcrawl.utils.human_simulator.asyncio.sleep", new=AsyncMock()):
            assert await simulator.click_element(page, "button")

        x, y = page.mouse.click.await_args.args
        assert 117 <= x <= 123
        assert 207 <= y <= 213
        element.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_click_without_box(self):
        element = make_element(box=None)
        simulator = HumanSimulator()

        assert await simulator.click_element(make_page(element), "button")
        element.click.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_click_missing_element(self):
        assert not await HumanSimulator().click_element(make_page(None), "button")


class TestSettle:

    def test_jitter_around_base(self):
        simulator = HumanSimulator(rng=random.Random(5))
        waits = [simulator.settle_ms(1000) for _ in range(20)]
        assert all(800 <= w <= 1300 for w in waits)
        assert len(set(waits)) > 1

    def test_fast_mode_no_wait(self):
        assert HumanSimulator(HumanSimulatorConfig(fast_mode=True)).settle_ms(1500) == 0


def test_create_from_thresholds():
    thresholds = CrawlThresholds(typing_min_char_delay_ms=10, typing_max_char_delay_ms=20, fast_mode=True)
    simulator = create_human_simulator_from_thresholds(thresholds)

    assert simulator.config.min_char_delay_ms == 10
    assert simulator.config.max_char_delay_ms == 20
    assert simulator.config.min_step_delay_seconds == 2.0
    assert simulator.config.fast_mode is True
