"""Unit tests for the ExtractionEngine."""

import json
from datetime import datetime
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

from bandcrawl.extraction.engine import (
    REASON_API_ERROR,
    REASON_EMPTY,
    REASON_NOT_PRODUCT,
    REASON_PARSE_FAILED,
    ExtractionEngine,
    default_product,
    load_json_object,
    with_date_prefix,
)
from bandcrawl.models import MultipleProducts, PickupType, ProductStatus, SingleProduct

SEOUL = ZoneInfo("Asia/Seoul")
POSTED_AT = "2024-06-18T09:00:00Z"
PRICED_POST = "사과 특가! 정상가 20,000원 → 할인가 15,000원. 내일 오후 2시 도착"


def make_engine(response):
    llm = Mock()
    if isinstance(response, Exception):
        llm.complete_json.side_effect = response
    else:
        llm.complete_json.return_value = response if isinstance(response, str) else json.dumps(response, ensure_ascii=False)
    return ExtractionEngine(llm_client=llm, tz=SEOUL), llm


class TestPlaceholders:

    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_empty_content(self, content):
        engine, llm = make_engine({})
        outcome = engine.extract(content, POSTED_AT)

        assert isinstance(outcome, SingleProduct)
        assert outcome.product.title == REASON_EMPTY
        llm.complete_json.assert_not_called()

    def test_content_without_price_skips_llm(self):
        engine, llm = make_engine({})
        outcome = engine.extract("오늘 모임 공지입니다", POSTED_AT)

        assert outcome.product.title == REASON_NOT_PRODUCT
        llm.complete_json.assert_not_called()

    def test_llm_error_gives_api_error_product(self):
        engine, _ = make_engine(RuntimeError("connection reset"))
        outcome = engine.extract(PRICED_POST, POSTED_AT)

        assert outcome.product.title == REASON_API_ERROR
        assert outcome.product.base_price == 0

    @pytest.mark.parametrize("raw", ["not json", "", "[1, 2]", '{"title": '])
    def test_unparseable_response(self, raw):
        engine, _ = make_engine(raw)
        outcome = engine.extract(PRICED_POST, POSTED_AT)

        assert outcome.product.title == REASON_PARSE_FAILED

    def test_schema_invalid_response(self):
        engine, _ = make_engine({"title": "사과", "multipleProducts": {"nested": "object"}, "tags": 5})
        outcome = engine.extract(PRICED_POST, POSTED_AT)
        # Coercible garbage is repaired rather than rejected
        assert outcome.product.title.endswith("사과")

    def test_default_product_shape(self):
        product = default_product("x")
        assert product.title == "x"
        assert product.base_price == 0
        assert [(o.quantity, o.price) for o in product.price_options] == [(1, 0)]
        assert product.item_number == 1


class TestSalePrice:

    def test_reference_price_excluded(self):
        engine, _ = make_engine({
            "title": "사과",
            "basePrice": 20000,
            "priceOptions": [
                {"quantity": 1, "price": 20000, "description": "정상가"},
                {"quantity": 1, "price": 15000, "description": "할인가"},
            ],
        })
        product = engine.extract(PRICED_POST, POSTED_AT).product

        assert product.base_price == 15000
        assert [o.price for o in product.price_options] == [15000]

    def test_unlabelled_later_lower_price_wins(self):
        engine, _ = make_engine({
            "title": "사과",
            "priceOptions": [
                {"quantity": 1, "price": "20,000원", "description": ""},
                {"quantity": 1, "price": "15,000원", "description": ""},
            ],
        })
        product = engine.extract(PRICED_POST, POSTED_AT).product

        assert product.base_price == 15000
        assert 20000 not in [o.price for o in product.price_options]

    def test_no_sale_price_gives_zero_placeholder(self):
        engine, _ = make_engine({
            "title": "사과",
            "priceOptions": [{"quantity": 1, "price": 20000, "description": "시중가"}],
        })
        product = engine.extract(PRICED_POST, POSTED_AT).product

        assert product.base_price == 0
        assert [(o.quantity, o.price, o.description) for o in product.price_options] == [(1, 0, "기본가")]

    def test_base_price_only_becomes_option(self):
        engine, _ = make_engine({"productName": "배추", "basePrice": 5000})
        product = engine.extract("배추 5000원", POSTED_AT).product

        assert product.title == "배추"
        assert product.base_price == 5000
        assert [(o.quantity, o.price) for o in product.price_options] == [(1, 5000)]


class TestNormalization:

    def test_pickup_date_and_title_prefix(self):
        engine, _ = make_engine({
            "title": "사과",
            "priceOptions": [{"quantity": 1, "price": 15000}],
            "pickupInfo": "내일 오후 2시 도착",
            "status": "판매중",
        })
        product = engine.extract(PRICED_POST, POSTED_AT).product

        assert product.pickup_date == datetime(2024, 6, 19, 14, 0, tzinfo=SEOUL)
        assert product.pickup_type is PickupType.ARRIVAL
        assert product.title == "[6월19일] 사과"

    def test_existing_prefix_not_doubled(self):
        assert with_date_prefix("[6월19일] 사과", datetime(2024, 6, 19)) == "[6월19일] 사과"
        assert with_date_prefix("사과", None) == "사과"

    def test_explicit_iso_pickup_date(self):
        engine, _ = make_engine({
            "title": "감자",
            "priceOptions": [{"quantity": 1, "price": 3000}],
            "pickupDate": "2024-06-21T17:00:00",
            "pickupType": "픽업",
        })
        product = engine.extract("감자 3000원 픽업", POSTED_AT).product

        assert product.pickup_date == datetime(2024, 6, 21, 17, 0, tzinfo=SEOUL)
        assert product.pickup_type is PickupType.PICKUP_COUNTER

    def test_no_pickup_info_leaves_date_empty(self):
        engine, _ = make_engine({"title": "감자", "priceOptions": [{"quantity": 1, "price": 3000}]})
        product = engine.extract("감자 3000원", POSTED_AT).product

        assert product.pickup_date is None
        assert product.title == "감자"

    @pytest.mark.parametrize(
        "status, expected",
        [
            ("판매중", ProductStatus.ON_SALE),
            ("완판", ProductStatus.SOLD_OUT),
            ("품절", ProductStatus.SOLD_OUT),
            ("예약", ProductStatus.RESERVED),
            ("예약중", ProductStatus.RESERVED),
            ("마감", ProductStatus.CLOSED),
            ("판매 종료", ProductStatus.CLOSED),
            ("???", ProductStatus.ON_SALE),
        ],
    )
    def test_status_mapping(self, status, expected):
        engine, _ = make_engine({"title": "감자", "priceOptions": [{"quantity": 1, "price": 3000}], "status": status})
        assert engine.extract("감자 3000원", POSTED_AT).product.status is expected


class TestMultipleProducts:

    def test_distinct_products_numbered(self):
        engine, _ = make_engine({
            "multipleProducts": True,
            "commonPickupInfo": "내일 수령",
            "products": [
                {"title": "방풍나물", "priceOptions": [{"quantity": 1, "price": 3000}]},
                {"title": "파프리카", "priceOptions": [{"quantity": 1, "price": 2500}]},
            ],
        })
        outcome = engine.extract("방풍나물 3000원 파프리카 2500원 내일 수령", POSTED_AT)

        assert isinstance(outcome, MultipleProducts)
        assert [p.item_number for p in outcome.products] == [1, 2]
        assert [p.title for p in outcome.products] == ["[6월19일] 방풍나물", "[6월19일] 파프리카"]
        assert all(p.pickup_type is PickupType.RECEIVE for p in outcome.products)

    def test_single_element_collapses(self):
        engine, _ = make_engine({
            "multipleProducts": True,
            "products": [{"title": "방풍나물", "priceOptions": [{"quantity": 1, "price": 3000}]}],
        })
        outcome = engine.extract("방풍나물 3000원", POSTED_AT)

        assert isinstance(outcome, SingleProduct)
        assert outcome.product.title == "방풍나물"
        assert outcome.product.item_number == 1

    def test_quantity_tiers_are_merged(self):
        engine, _ = make_engine({
            "multipleProducts": True,
            "products": [
                {"title": "사과 1개", "basePrice": 1000, "priceOptions": [{"quantity": 1, "price": 1000}]},
                {"title": "사과 2개", "basePrice": 1800, "priceOptions": [{"quantity": 1, "price": 1800}]},
            ],
        })
        outcome = engine.extract("사과 1개 1,000원 2개 1,800원", POSTED_AT)

        assert isinstance(outcome, SingleProduct)
        assert outcome.product.title == "사과"
        assert [(o.quantity, o.price) for o in outcome.product.price_options] == [(1, 1000), (2, 1800)]

    def test_multiple_flag_without_products_is_single(self):
        engine, _ = make_engine({"multipleProducts": True, "title": "감자", "priceOptions": [{"quantity": 1, "price": 3000}]})
        outcome = engine.extract("감자 3000원", POSTED_AT)
        assert isinstance(outcome, SingleProduct)
        assert outcome.product.base_price == 3000


class TestLoadJsonObject:

    def test_code_fence(self):
        assert load_json_object('```json\n{"title": "사과"}\n```') == {"title": "사과"}

    def test_surrounding_chatter(self):
        assert load_json_object('결과입니다: {"title": "사과"} 끝') == {"title": "사과"}

    @pytest.mark.parametrize("raw", [None, "", "   ", "no braces", "{broken"])
    def test_invalid(self, raw):
        assert load_json_object(raw) is None


def test_prompt_carries_content_and_post_time():
    engine, llm = make_engine({"title": "사과", "priceOptions": [{"quantity": 1, "price": 1000}]})
    engine.extract("사과 1,000원", POSTED_AT, band_id="1", post_id="2")

    system_prompt, user_prompt = llm.complete_json.call_args[0]
    assert "JSON" in system_prompt
    assert "사과 1,000원" in user_prompt
    assert "2024-06-18T18:00:00+09:00" in user_prompt
