"""
水印配置归一化 - 把表单/JSON中的原始值转换为 WatermarkOptions

所有类型转换和默认值回退都集中在这里，下游代码拿到的值可以直接用于绘制。
数值解析按表单值的习惯宽松处理：取字符串开头的数字部分（"40px" -> 40），
无法解析的值使用默认值。
"""
import math
import re
from typing import Any, Mapping, Optional

import config as app_config
from models import WatermarkOptions

_FLOAT_PREFIX_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_INT_PREFIX_RE = re.compile(r"^\s*[+-]?\d+")

# camelCase 字段名到 WatermarkOptions 字段名的映射
_ALIASES = {
    "fontSize": "font_size",
}


def _parse_float(value: Any) -> Optional[float]:
    """解析浮点数，失败返回 None"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _FLOAT_PREFIX_RE.match(value)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None


def _parse_int(value: Any) -> Optional[int]:
    """解析整数（小数向零截断），失败返回 None"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _INT_PREFIX_RE.match(value)
        return int(match.group(0)) if match else None
    return None


def _normalize_text(value: Any) -> str:
    text = "" if value is None else str(value)
    return text if text.strip() else app_config.DEFAULT_WATERMARK_CONFIG["text"]


def _normalize_color(value: Any) -> str:
    color = "" if value is None else str(value).strip()
    return color or app_config.DEFAULT_WATERMARK_CONFIG["color"]


def normalize_options(raw: Optional[Mapping[str, Any]] = None) -> WatermarkOptions:
    """
    把原始配置归一化为不可变的 WatermarkOptions

    - text: 为空时使用默认文字
    - color: 为空时使用默认黑色，具体格式由颜色解析负责
    - opacity: 无效时 0.5，有效值限制在 [0, 1]
    - font_size: 无效或非正数时 50
    - rotation: 无效时 -45
    - density: 无效或超出 [1, 5] 时为 3
    """
    defaults = app_config.DEFAULT_WATERMARK_CONFIG
    values = {}
    for key, value in (raw or {}).items():
        values[_ALIASES.get(key, key)] = value

    opacity = _parse_float(values.get("opacity"))
    if opacity is None:
        opacity = defaults["opacity"]

    font_size = _parse_int(values.get("font_size"))
    if font_size is None or font_size <= 0:
        font_size = defaults["font_size"]

    rotation = _parse_int(values.get("rotation"))
    if rotation is None:
        rotation = defaults["rotation"]

    density = _parse_int(values.get("density"))
    if density is None or not app_config.MIN_DENSITY <= density <= app_config.MAX_DENSITY:
        density = defaults["density"]

    return WatermarkOptions(
        text=_normalize_text(values.get("text")),
        color=_normalize_color(values.get("color")),
        opacity=max(0.0, min(1.0, opacity)),
        font_size=font_size,
        rotation=rotation,
        density=density,
    )
