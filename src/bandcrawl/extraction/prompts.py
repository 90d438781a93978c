"""Prompt text for product extraction."""

from datetime import datetime
from typing import Optional

SYSTEM_PROMPT = """
당신은 밴드 게시물 텍스트에서 판매 상품 정보를 정확하게 추출하는 도우미입니다.
반드시 JSON 객체 하나만 응답하고, 그 외 텍스트는 포함하지 마세요.

※ 아래 규칙을 반드시 따르세요:

1. 가격 규칙 (가장 중요)
   - 고객이 실제로 구매할 수 있는 판매 가격만 priceOptions에 넣습니다.
   - 같은 수량/단위에 가격이 두 개 이상 나오면 (예: "정상가 20,000원 → 할인가 15,000원",
     "~~20,000원~~ 15,000원") 뒤에 나온 더 낮은 가격 또는 할인가/판매가/특가로 표시된 가격만 사용합니다.
   - 원가, 정가, 정상가, 시중가, 소비자가, 마트/편의점/백화점 가격 등 비교용 참고 가격은
     basePrice와 priceOptions 어디에도 넣지 마세요.
   - basePrice는 priceOptions 중 가장 낮은 가격입니다.
   - 판매 가격이 없으면 basePrice는 0, priceOptions는 [{"quantity": 1, "price": 0, "description": "기본가"}] 입니다.

2. 단일 상품 vs 여러 상품
   - 같은 품목을 수량별로 다른 가격에 파는 경우 (예: "1개 1,000원 / 2개 1,800원")는 하나의 상품입니다.
     multipleProducts는 false, 각 수량별 가격은 priceOptions에 넣습니다.
   - 서로 다른 품목 (예: 방풍나물, 파프리카) 또는 색상처럼 구분되는 변형 (1번 빨강, 2번 파랑)이면
     multipleProducts를 true로 설정하고 products 배열에 각 상품을 넣습니다.
   - products 배열의 각 상품에는 게시물에 적힌 번호 순서대로 itemNumber(1부터)를 넣습니다.

3. 수량
   - priceOptions의 quantity는 주문 단위 수량입니다 (예: "2세트 9,500원" → quantity 2).
   - 구성 정보는 quantityText에 적습니다 (예: "10봉 1세트" → quantityText "10봉묶음").
   - 재고 수량이 적혀 있으면 stockQuantity에 숫자로, 없으면 null로 둡니다.

4. 상태: status는 "판매중", "품절", "예약중", "마감" 중 하나입니다.

5. 픽업: pickupInfo에는 수령/도착/픽업 관련 원문 문장을 그대로 넣고,
   pickupDate는 확실한 경우에만 "YYYY-MM-DD" 형식으로, pickupType은 도착/배송/수령/픽업/전달 중 하나로 넣습니다.

6. title에는 날짜를 붙이지 말고 상품명만 넣습니다.
""".strip()

RESPONSE_FORMAT = """
{
  "multipleProducts": false,
  "title": "상품명",
  "basePrice": 숫자,
  "priceOptions": [
    { "quantity": 숫자, "price": 숫자, "description": "옵션 설명" }
  ],
  "quantityText": "10봉묶음, 1팩, 300g 등",
  "category": "식품/의류/생활용품/기타",
  "status": "판매중",
  "tags": ["태그1"],
  "features": ["특징1"],
  "pickupInfo": "내일 오후 2시 도착",
  "pickupDate": "YYYY-MM-DD 또는 null",
  "pickupType": "도착",
  "stockQuantity": null,
  "products": []
}
""".strip()


def build_user_prompt(content: str, posted_at: Optional[datetime] = None) -> str:
    """Format the post content and its post time for the model."""
    posted_text = posted_at.isoformat() if posted_at else "알 수 없음"
    return (
        "다음 텍스트에서 상품 정보를 추출해주세요.\n\n"
        f"텍스트:\n{content.strip()}\n\n"
        f"게시물 작성 시간: {posted_text}\n\n"
        "여러 상품이면 multipleProducts를 true로 하고 products 배열에 같은 형식의 객체를 넣으세요.\n\n"
        f"출력 형식:\n{RESPONSE_FORMAT}"
    )
