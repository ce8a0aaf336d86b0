"""
颜色解析 - 支持十六进制 (#RGB / #RRGGBB) 和小数 RGB ("0.5,0.5,0.5") 两种格式
"""
import math
import re
import logging
from typing import Optional, Tuple

from models import RGBColor

logger = logging.getLogger(__name__)

BLACK = RGBColor(0.0, 0.0, 0.0)

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _parse_hex(hex_color: str) -> Tuple[RGBColor, Optional[str]]:
    if not _HEX_RE.match(hex_color):
        return BLACK, f"无效的十六进制颜色: #{hex_color}"

    if len(hex_color) == 3:
        # 短格式 #RGB，每一位重复一次
        channels = [int(d + d, 16) / 255 for d in hex_color]
    elif len(hex_color) == 6:
        channels = [int(hex_color[i:i+2], 16) / 255 for i in (0, 2, 4)]
    else:
        return BLACK, f"无效的十六进制颜色长度({len(hex_color)}): #{hex_color}"
    return RGBColor(*channels), None


def _parse_fractional(color_str: str) -> Tuple[RGBColor, Optional[str]]:
    tokens = color_str.split(",")
    if len(tokens) < 3:
        return BLACK, f"RGB颜色分量不足3个: {color_str!r}"

    values = []
    for token in tokens:
        try:
            value = float(token)
        except ValueError:
            return BLACK, f"RGB颜色分量不是数字: {token!r}"
        if not math.isfinite(value):
            return BLACK, f"RGB颜色分量不是有限数: {token!r}"
        values.append(value)
    return RGBColor(*values[:3]), None


def parse_color_checked(color_str: str) -> Tuple[RGBColor, Optional[str]]:
    """
    解析颜色字符串，返回 (颜色, 降级原因)

    解析失败时颜色为黑色，降级原因为描述字符串；成功时原因为 None。
    无论哪条路径，最终三个通道都会被限制在 [0, 1]。
    """
    color_str = (color_str or "").strip()

    if color_str.startswith("#"):
        color, reason = _parse_hex(color_str[1:])
    else:
        color, reason = _parse_fractional(color_str)

    if reason:
        logger.warning(f"{reason}，使用默认黑色")

    return RGBColor(_clamp(color.r), _clamp(color.g), _clamp(color.b)), reason


def parse_color(color_str: str) -> RGBColor:
    """解析颜色字符串，永不抛出异常，无效输入返回黑色"""
    color, _ = parse_color_checked(color_str)
    return color
