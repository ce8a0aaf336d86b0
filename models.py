"""
数据模型定义
"""
from enum import Enum
from typing import List, NamedTuple, Optional
from pydantic import BaseModel, ConfigDict, Field


class RGBColor(NamedTuple):
    """归一化颜色，每个通道取值 [0, 1]"""
    r: float
    g: float
    b: float


class StampPosition(NamedTuple):
    """水印落点，页面坐标（原点在左下角，单位为点）"""
    x: float
    y: float
    size: float


class PageGeometry(NamedTuple):
    width: float
    height: float


class WatermarkOptions(BaseModel):
    """归一化后的水印配置，创建后不可修改"""
    model_config = ConfigDict(frozen=True)

    text: str = Field(default="水印文本", min_length=1, description="水印文字")
    color: str = Field(default="#000000", description="颜色(HEX 或 r,g,b 小数格式)")
    opacity: float = Field(default=0.5, ge=0.0, le=1.0, description="透明度")
    font_size: int = Field(default=50, gt=0, description="字体大小")
    rotation: int = Field(default=-45, description="旋转角度")
    density: int = Field(default=3, ge=1, le=5, description="水印密度")


class FallbackKind(str, Enum):
    """可恢复的降级事件类型"""
    INVALID_COLOR = "invalid_color"
    FONT_FALLBACK = "font_fallback"
    TEXT_SUBSTITUTED = "text_substituted"


class FallbackEvent(BaseModel):
    """一次降级处理的记录"""
    kind: FallbackKind
    detail: str


class PageReport(BaseModel):
    page_number: int
    width: float
    height: float
    stamps: int
    diagnostic_stamp: bool = False


class WatermarkResult(BaseModel):
    """水印处理结果"""
    filename: str
    content: bytes
    page_count: int
    pages: List[PageReport] = Field(default_factory=list)
    using_fallback_font: bool = False
    rendered_text: str
    color: RGBColor
    events: List[FallbackEvent] = Field(default_factory=list)
    download_url: Optional[str] = None

    def has_event(self, kind: FallbackKind) -> bool:
        return any(event.kind == kind for event in self.events)


class WatermarkResponse(BaseModel):
    """水印响应"""
    success: bool
    message: str
    download_url: Optional[str] = None
    filename: Optional[str] = None
    page_count: Optional[int] = None
    using_fallback_font: bool = False
    events: List[FallbackEvent] = Field(default_factory=list)
