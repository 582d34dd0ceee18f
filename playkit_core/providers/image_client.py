"""图片生成客户端（/v1/image）。

尺寸校验规则：
- 必须是 WIDTHxHEIGHT 形式，缺少 "x" 视为取值非法，宽高不是正整数视为格式非法，两者都在本地拒绝；
- 格式合法但不在常用尺寸列表中的，只记一条 WARNING 并照常发送。

返回的 b64_json 解码为原始字节；图片格式转换不在本 SDK 范围内。
"""

import base64
import binascii
from typing import Any, Dict, List, Optional

from playkit_core.domain.errors import ErrorCode, ErrorRecord, make_error
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.models import GeneratedImage, ImageGenerationResult
from playkit_core.domain.results import Result
from playkit_core.infrastructure.logging.logger import get_logger
from playkit_core.providers.base import RequestTransport
from playkit_core.providers.registry import IMAGE

log = get_logger("image")

SUPPORTED_SIZES = (
    "256x256",
    "512x512",
    "1024x1024",
    "1024x1536",
    "1536x1024",
    "1024x1792",
    "1792x1024",
)
MAX_IMAGES = 10


def validate_size(size: str) -> Optional[ErrorRecord]:
    """校验尺寸字符串；合法时返回 None（不常用的尺寸只告警）。"""

    if not size or "x" not in size:
        return make_error(
            ErrorCode.INVALID_IMAGE_SIZE,
            f"Invalid size value {size!r}, expected WIDTHxHEIGHT",
            size=size,
        )
    width, _, height = size.partition("x")
    if not (width.isdigit() and height.isdigit()) or int(width) <= 0 or int(height) <= 0:
        return make_error(
            ErrorCode.INVALID_IMAGE_SIZE,
            f"Invalid size format {size!r}, width and height must be positive integers",
            size=size,
        )
    if size not in SUPPORTED_SIZES:
        log.warning("Image size is not in the supported list, sending anyway", extra={"extra": {"size": size}})
    return None


class ImageClient:
    name = "image"

    def __init__(self, transport: RequestTransport, settings, model: Optional[str] = None):
        self._transport = transport
        self._settings = settings
        self.model = model or settings.default_image_model

    async def generate(
        self,
        prompt: str,
        *,
        n: int = 1,
        size: str = "1024x1024",
        aspect_ratio: Optional[str] = None,
        seed: Optional[int] = None,
        model: Optional[str] = None,
    ) -> Result[ImageGenerationResult]:
        if not prompt:
            return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, "Prompt is empty", field="prompt")
        if not 1 <= n <= MAX_IMAGES:
            return Result.failure(ErrorCode.INVALID_PARAMETERS, f"n must be between 1 and {MAX_IMAGES}", field="n")
        size_error = validate_size(size)
        if size_error is not None:
            return Result.fail(size_error)

        body: Dict[str, Any] = {"model": model or self.model, "prompt": prompt, "n": n, "size": size}
        if aspect_ratio:
            body["aspect_ratio"] = aspect_ratio
        if seed is not None:
            body["seed"] = seed
        try:
            data = await self._transport.post(IMAGE, body)
        except BusinessError as e:
            return Result.from_exception(e)
        return self._parse_response(data)

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> Result[ImageGenerationResult]:
        images: List[GeneratedImage] = []
        for item in data.get("data") or []:
            if not isinstance(item, dict):
                continue
            raw_b64 = item.get("b64_json") or ""
            try:
                decoded = base64.b64decode(raw_b64) if raw_b64 else b""
            except (binascii.Error, ValueError):
                return Result.failure(ErrorCode.IMAGE_GENERATION_FAILED, "Image payload is not valid base64")
            images.append(GeneratedImage(data=decoded, revised_prompt=item.get("revised_prompt"), url=item.get("url")))
        if not images:
            return Result.failure(ErrorCode.IMAGE_GENERATION_FAILED, "No images returned")
        return Result.ok(ImageGenerationResult(created=int(data.get("created") or 0), images=images, raw=data))
