#!/usr/bin/env python3
"""
Translation client

Builds the few-shot prompt for one batch of strings, sends it through an
``LLMClient`` and validates the JSON answer against the request.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import ValidationError
from .llm_provider import LLMClient
from .language_utils import to_bcp47

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_LANGUAGE = "en"

_EXPORT_FAILURES = [
    "Export as PDF failed",
    "Share as PDF failed",
    "Export to gallery failed",
    "Share as picture failed",
    "Print PDF failed",
    "Insert password",
]

# (target language, source texts, expected translations)
FEW_SHOT_EXAMPLES: List[Tuple[str, List[str], List[str]]] = [
    (
        "ko",
        [
            "Your document has been saved successfully.",
            "Please check your internet connection and try again.",
            "This feature is not available in the free version.",
        ],
        [
            "문서가 성공적으로 저장되었습니다.",
            "인터넷 연결을 확인하고 다시 시도하세요.",
            "이 기능은 무료 버전에서 사용할 수 없습니다.",
        ],
    ),
    ("fr", ["QR & Barcode Scanner"], ["Scanner de QR & code-barres"]),
    (
        "ko",
        [
            "Don\\'t forget to write tag #XpertScan",
            "Can\\'t find an app that supports this action",
        ],
        [
            "#XpertScan 태그를 작성하는 것을 잊지 마세요",
            "이 작업을 지원하는 앱을 찾을 수 없습니다",
        ],
    ),
    (
        "zh",
        _EXPORT_FAILURES,
        ["导出为PDF失败", "分享为PDF失败", "导出到图库失败", "分享为图片失败", "打印PDF失败", "请输入密码"],
    ),
    (
        "vi",
        _EXPORT_FAILURES,
        [
            "Xuất PDF thất bại",
            "Chia sẻ dưới dạng PDF thất bại",
            "Xuất vào thư viện thất bại",
            "Chia sẻ dưới dạng hình ảnh thất bại",
            "In PDF thất bại",
            "Nhập mật khẩu",
        ],
    ),
    (
        "it",
        _EXPORT_FAILURES,
        [
            "Esportazione come PDF fallita",
            "Condivisione come PDF fallita",
            "Esportazione nella galleria fallita",
            "Condivisione come immagine fallita",
            "Stampa PDF fallita",
            "Inserisci la password",
        ],
    ),
    (
        "vi",
        ["Enable <b>Notifications</b> for continuous using when the app is closed."],
        ["Bật <b>Thông báo</b> của ứng dụng để tiếp tục sử dụng khi ứng dụng bị đóng."],
    ),
    (
        "vi",
        [
            "Dear User,\\n\\nThank you for using our service.\\r\\nPlease note the following:"
            "\\n\\t- Your subscription expires soon.\\n\\t- Renew to continue enjoying premium features."
            "\\n\\nBest regards,\\nThe Support Team",
            "Error!\\r\\n\\tSomething went wrong while processing your request."
            "\\nPlease try again later or contact support.",
        ],
        [
            "Kính gửi người dùng,\\n\\nCảm ơn bạn đã sử dụng dịch vụ của chúng tôi.\\r\\nVui lòng lưu ý:"
            "\\n\\t- Gói đăng ký của bạn sắp hết hạn.\\n\\t- Gia hạn để tiếp tục tận hưởng các tính năng cao cấp."
            "\\n\\nTrân trọng,\\nĐội ngũ Hỗ trợ",
            "Lỗi!\\r\\n\\tĐã xảy ra sự cố khi xử lý yêu cầu của bạn."
            "\\nVui lòng thử lại sau hoặc liên hệ bộ phận hỗ trợ.",
        ],
    ),
    (
        "vi",
        [
            'Set app <font color="#FF3E3E"><b>PDF Reader</b></font> as the default PDF reader',
            'Click <font color="#007AFF"><b>Allow</b></font> to enable permissions',
        ],
        [
            'Đặt ứng dụng <font color="#FF3E3E"><b>PDF Reader</b></font> làm trình đọc PDF mặc định',
            'Nhấn <font color="#007AFF"><b>Cho phép</b></font> để bật quyền',
        ],
    ),
    (
        "ko",
        [
            'Download <font color="#34C759"><b>Premium</b></font> version for unlimited features',
            'Status: <font color="#FF9500"><b>Processing...</b></font>',
        ],
        [
            '<font color="#34C759"><b>프리미엄</b></font> 버전을 다운로드하여 무제한 기능을 이용하세요',
            '상태: <font color="#FF9500"><b>처리 중...</b></font>',
        ],
    ),
]

FORMATTING_RULES = """IMPORTANT FORMATTING RULES:
1. Always preserve HTML/XML tags exactly as they appear: <b>, </b>, <font>, </font>, etc.
2. Keep every HTML attribute unchanged: color="#FF3E3E", style="...", etc.
3. Only translate the actual text content, never the HTML structure
4. Preserve all escape sequences: \\n, \\r, \\t, \\', \\\\, etc.
5. Keep special characters and symbols unchanged: #, @, &, %s, %1$d, etc.
6. Answer with JSON only, one translation per input id"""


@dataclass(frozen=True)
class StringItem:
    id: int
    text: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "text": self.text}
        if self.name is not None:
            data["name"] = self.name
        return data


@dataclass(frozen=True)
class TranslationRequest:
    source_language: str
    target_language: str
    strings: Tuple[StringItem, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_language": self.source_language,
            "target_language": self.target_language,
            "strings": [item.to_dict() for item in self.strings],
        }


@dataclass(frozen=True)
class TranslatedItem:
    id: int
    text: str


@dataclass(frozen=True)
class TranslationResponse:
    translations: Tuple[TranslatedItem, ...]


def build_request(
    pairs: Sequence[Tuple[str, str]],
    target_language: str,
    source_language: str = DEFAULT_SOURCE_LANGUAGE,
) -> TranslationRequest:
    """Number the (name, text) pairs of one batch from 1 and wrap them in a request."""
    strings = tuple(
        StringItem(id=index, text=text, name=name)
        for index, (name, text) in enumerate(pairs, start=1)
    )
    return TranslationRequest(source_language, to_bcp47(target_language), strings)


def _to_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _render_examples() -> str:
    blocks = []
    for target, sources, translations in FEW_SHOT_EXAMPLES:
        example_input = {
            "source_language": DEFAULT_SOURCE_LANGUAGE,
            "target_language": target,
            "strings": [{"id": i, "text": text} for i, text in enumerate(sources, start=1)],
        }
        example_output = {
            "translations": [
                {"id": i, "text": text} for i, text in enumerate(translations, start=1)
            ]
        }
        blocks.append(f"input: {_to_json(example_input)}\noutput: {_to_json(example_output)}")
    return "\n\n".join(blocks)


def build_prompt(request: TranslationRequest) -> str:
    """Few-shot examples, then formatting rules, then the request itself."""
    return (
        f"{_render_examples()}\n\n"
        f"{FORMATTING_RULES}\n\n"
        f"input: {_to_json(request.to_dict())}\n"
        "output:"
    )


_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


def clean_response_text(text: str) -> str:
    """Remove Markdown code fences around a JSON answer."""
    return _CODE_FENCE_PATTERN.sub("", text).strip()


def parse_response(text: str, request: TranslationRequest) -> TranslationResponse:
    """
    Parse and validate a model answer against the request it answers.

    The answer must hold exactly one translation per request id, ids
    1..N with no duplicates. The returned translations are sorted by id.

    Raises:
        ValidationError: If the answer is not JSON or does not match the request.
    """
    cleaned = clean_response_text(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Response text: {text}")
        raise ValidationError(f"Could not parse translation response: {e}") from e

    raw_items = data.get("translations") if isinstance(data, dict) else None
    if not isinstance(raw_items, list):
        raise ValidationError('Translation response has no "translations" list')
    if not raw_items:
        raise ValidationError("Translation response contains no translations")

    items: List[TranslatedItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError(f"Translation entry is not an object: {raw!r}")
        item_id = raw.get("id")
        item_text = raw.get("text")
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise ValidationError(f"Translation id is not an integer: {item_id!r}")
        if item_id <= 0:
            raise ValidationError(f"Translation id must be positive, got {item_id}")
        if not isinstance(item_text, str):
            raise ValidationError(f"Translation {item_id} has no text")
        items.append(TranslatedItem(item_id, item_text))

    ids = [item.id for item in items]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate translation ids: {duplicates}")

    expected = len(request.strings)
    if len(items) != expected:
        raise ValidationError(
            f"Expected {expected} translations, got {len(items)}",
            hint="Reduce the batch size if the model keeps dropping strings.",
        )

    expected_ids = {item.id for item in request.strings}
    if set(ids) != expected_ids:
        raise ValidationError(
            f"Translation ids {sorted(ids)} do not match request ids {sorted(expected_ids)}"
        )

    return TranslationResponse(tuple(sorted(items, key=lambda item: item.id)))


def calculate_timeout(
    string_count: int,
    base: float = 30,
    per_item: float = 5,
    minimum: float = 30,
    maximum: float = 300,
) -> float:
    """Timeout for a request carrying ``string_count`` strings."""
    return max(minimum, min(maximum, base + per_item * string_count))


def pair_translations(
    pairs: Sequence[Tuple[str, str]], response: TranslationResponse
) -> List[Tuple[str, str]]:
    """
    Zip a validated response back onto the (name, text) pairs of its batch.

    Raises:
        ValidationError: If an id of the batch has no translation.
    """
    by_id = {item.id: item.text for item in response.translations}
    result = []
    for index, (name, _) in enumerate(pairs, start=1):
        if index not in by_id:
            raise ValidationError(f'Missing translation for "{name}" (id {index})')
        result.append((name, by_id[index]))
    return result


class TranslationClient:
    """Translate one request per call with the credential it is given."""

    def __init__(
        self,
        llm_client: LLMClient,
        timeout_base: float = 30,
        timeout_per_item: float = 5,
        timeout_min: float = 30,
        timeout_max: float = 300,
    ):
        self.llm_client = llm_client
        self.timeout_base = timeout_base
        self.timeout_per_item = timeout_per_item
        self.timeout_min = timeout_min
        self.timeout_max = timeout_max

    def timeout_for(self, request: TranslationRequest) -> float:
        return calculate_timeout(
            len(request.strings),
            self.timeout_base,
            self.timeout_per_item,
            self.timeout_min,
            self.timeout_max,
        )

    def translate(self, request: TranslationRequest, credential: str) -> TranslationResponse:
        """
        Translate every string of ``request``.

        Raises:
            UpstreamError, TranslationTimeoutError, RateLimitError: From the transport.
            ValidationError: If the answer does not match the request.
        """
        timeout = self.timeout_for(request)
        logger.debug(
            f"Translating {len(request.strings)} strings to {request.target_language} "
            f"(timeout {timeout}s)"
        )
        text = self.llm_client.generate_text(build_prompt(request), credential, timeout)
        return parse_response(text, request)
