# src/bandcrawl/constants.py
"""Centralized constants for the Band crawler.

URLs, DOM selectors and keyword lists shared by the driver, the HTML
parsers and the extraction engine. For user-configurable timings, see
config.py and CrawlThresholds.
"""

# =============================================================================
# Band / Naver URLs
# =============================================================================

BAND_HOME_URL = "https://band.us"
BAND_PAGE_URL = "https://band.us/band/{band_id}"
BAND_POST_URL = "https://band.us/band/{band_id}/post/{post_id}"
BAND_LOGIN_URL = "https://auth.band.us/login_page"
NAVER_LOGIN_URL = "https://nid.naver.com/nidlogin.login"

# Hosts that still count as "on the login page"
LOGIN_HOSTS = ("auth.band.us", "nid.naver.com")

# Cookie domains kept in the session cache
SESSION_COOKIE_DOMAINS = ("band.us",)

# Without this cookie a cached session is useless
REQUIRED_SESSION_COOKIE = "band_session"


# =============================================================================
# Login selectors
# =============================================================================

NAVER_LOGIN_BUTTON = "a.-naver.externalLogin, a.uButtonRound.-h56.-icoType.-naver"
NAVER_ID_INPUT = "#id"
NAVER_PW_INPUT = "#pw"
NAVER_SUBMIT_BUTTON = "button.btn_login, button[type='submit']"
NAVER_LOGIN_ERROR = "#err_common, .error_message, .error_area"

LOGGED_IN_MARKER = ".profileInner"
LOGIN_PAGE_MARKERS = "form.login_form, .login-page, .loginArea, a.login"


# =============================================================================
# Access verification
# =============================================================================

ACCESS_DENIED_MARKERS = ".errorMessage, .accessDenied"
BAND_CONTENT_MARKERS = ".bandName, .contentArea, .bandContent"


# =============================================================================
# Post list / post detail / comments
# =============================================================================

POST_LIST_CONTAINER = ".postWrap"
POST_CARD = ".postWrap .cCard article._postMainWrap"
POST_CARD_FALLBACK = ".cCard"
POST_CARD_LINK = "div.postWriterInfoWrap a.text"
POST_CARD_ANY_LINK = "a[href*='/post/']"
POST_CARD_AUTHOR = "div.postWriterInfoWrap a.text, .postWriterInfoWrap .text, .userName"
POST_CARD_TIME = "div.postListInfoWrap time.time"
POST_CARD_CONTENT = ".postText, .txtBody"
POST_CARD_COMMENT_COUNT = "button._commentCountBtn span.count"

POST_DETAIL_BODY = ".postBody .dPostTextView .txtBody"
POST_DETAIL_AUTHOR = ".postWriterInfoWrap .text, .userName"
POST_DETAIL_TIME = ".postListInfoWrap .time, .etcArea .time"
POST_DETAIL_READ_COUNT = "._postReaders strong, .postMeta .count"
POST_DETAIL_CONTAINER = ".postBody, .dPostTextView, .postMain"

COMMENT_CONTAINER = ".dPostCommentMainView"
PREVIOUS_COMMENTS_BUTTON = "button[data-uiselector='previousCommentButton']"
COMMENT_ITEM = ".cComment"
COMMENT_ITEM_FALLBACK = ".uCommentList li"
COMMENT_AUTHOR = "button[data-uiselector='authorNameButton'] strong.name, .writerName"
COMMENT_NICKNAME = ".nickname, .writerNickname"
COMMENT_TIME = "time.time, .commentDate"
COMMENT_CONTENT = "p.txt._commentContent, .commentBody .text"
COMMENT_SECRET = ".secretGuideBox"
COMMENT_PROFILE_IMAGE = ".uProfile img, .profileImage img"

SECRET_COMMENT_TEXT = "[비밀 댓글]"

# Body text on a deleted or restricted post
BLOCKED_POST_PHRASES = (
    "삭제되었거나",
    "찾을 수 없습니다",
    "삭제된 게시글",
    "존재하지 않는 게시글",
    "권한이 없습니다",
    "접근할 수 없습니다",
    "비공개 설정된 글",
)


# =============================================================================
# CAPTCHA
# =============================================================================

CAPTCHA_SELECTORS = {
    "recaptcha_iframe": "iframe[src*='recaptcha']",
    "recaptcha_widget": ".g-recaptcha",
    "captcha_iframe": "iframe[src*='captcha']",
    "captcha_box": "#captcha",
    "recaptcha_box": "#recaptcha",
}

CAPTCHA_TEXT_MARKERS = (
    "captcha",
    "로봇이 아닙니다",
    "자동 가입 방지",
    "보안 인증",
    "보안문자",
)


# =============================================================================
# Extraction keywords
# =============================================================================

PICKUP_KEYWORDS = ("도착", "배송", "수령", "픽업", "전달")
DEFAULT_PICKUP_KEYWORD = "수령"

PRICE_KEYWORDS = ("수령", "픽업", "도착", "예약", "주문", "특가", "정상가", "할인가", "가격", "원", "₩")

# Option labels that mark a comparison price rather than a sale price
REFERENCE_PRICE_LABELS = ("원가", "정가", "정상가", "시중가", "소비자가", "마트", "편의점", "백화점")
SALE_PRICE_LABELS = ("할인가", "판매가", "특가", "세일")

CLOSING_KEYWORDS = (
    "마감",
    "종료",
    "완판",
    "품절",
    "완료",
    "주문마감",
    "주문종료",
    "판매마감",
    "판매종료",
    "sold out",
    "soldout",
)

ORDER_CANCEL_KEYWORDS = ("마감", "취소", "cancel")

# Units that only count pieces of the same item
QUANTITY_UNIT_SYNONYMS = ("개", "알", "과", "낱개", "각", "봉", "봉지", "팩", "통")
