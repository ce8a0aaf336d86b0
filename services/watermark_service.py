"""
PDF水印服务 - 把文字水印按计算好的位置绘制到每一页
"""
import io
import asyncio
import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple
from reportlab.pdfgen import canvas
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from PyPDF2 import PageObject, PdfReader, PdfWriter

import config as app_config
from errors import DocumentLoadError, DocumentSaveError, FontEmbedError
from models import (
    FallbackEvent, FallbackKind, PageGeometry, PageReport, RGBColor,
    StampPosition, WatermarkOptions, WatermarkResult
)
from services.color_parser import parse_color_checked
from services.options import normalize_options
from services.positions import generate_positions
from utils.file_handler import discover_font_sources, fetch_font_asset, generate_output_filename


# 配置日志
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# 文档解析、字体解析、逐页绘制和序列化都在线程池中执行
thread_pool = ThreadPoolExecutor(max_workers=app_config.MAX_WORKERS)

DIAGNOSTIC_COLOR = RGBColor(1.0, 0.0, 0.0)

# 下载协作方: (文件内容, MIME类型, 文件名) -> 下载地址
Downloader = Callable[[bytes, str, str], Optional[str]]


def load_document(pdf_data: bytes) -> PdfReader:
    """解析PDF，失败时抛出 DocumentLoadError"""
    try:
        reader = PdfReader(io.BytesIO(pdf_data))
        if reader.is_encrypted:
            raise DocumentLoadError("PDF文档已加密，无法添加水印")
        page_count = len(reader.pages)
    except DocumentLoadError:
        raise
    except Exception as e:
        raise DocumentLoadError(f"无法解析PDF文档: {e}") from e

    if page_count == 0:
        raise DocumentLoadError("PDF文档没有任何页面")
    return reader


def save_document(writer: PdfWriter) -> bytes:
    """序列化PDF，失败时抛出 DocumentSaveError"""
    output = io.BytesIO()
    try:
        writer.write(output)
    except Exception as e:
        raise DocumentSaveError(f"保存PDF文档失败: {e}") from e
    return output.getvalue()


def missing_glyphs(font: TTFont, text: str) -> List[str]:
    """返回字体中没有字形的字符（忽略空白）"""
    char_to_glyph = font.face.charToGlyph
    return sorted({ch for ch in text if not ch.isspace() and ord(ch) not in char_to_glyph})


def register_font(font_data: bytes, text: str) -> str:
    """
    把字体注册到 reportlab，返回字体名称

    字体无法解析，或缺少水印文字需要的字形时抛出 FontEmbedError
    """
    # 按内容生成名称，同一字体重复注册不会互相覆盖出错
    name = f"Watermark-{hashlib.sha1(font_data).hexdigest()[:12]}"
    try:
        # .ttc 文件取第一个子字体
        font = TTFont(name, io.BytesIO(font_data), subfontIndex=0)
    except Exception as e:
        raise FontEmbedError(f"字体嵌入失败: {e}") from e

    missing = missing_glyphs(font, text)
    if missing:
        raise FontEmbedError(f"字体缺少水印文字的字形: {''.join(missing)}")

    pdfmetrics.registerFont(font)
    return name


async def embed_font_source(source: str, text: str) -> str:
    """下载并注册单个字体来源，解析字体在线程池中执行"""
    try:
        font_data = await fetch_font_asset(source)
    except Exception as e:
        raise FontEmbedError(f"无法加载字体 {source}: {e}") from e

    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(thread_pool, register_font, font_data, text)
    except FontEmbedError as e:
        raise FontEmbedError(f"{source}: {e}") from e


async def load_preferred_font(
    font_sources: Sequence[str],
    text: str,
    events: List[FallbackEvent]
) -> Optional[str]:
    """
    依次尝试字体来源，返回第一个能渲染 text 的字体名称

    全部失败时返回 None，并记录一条 font_fallback 事件
    """
    causes = []
    for source in font_sources:
        try:
            font_name = await embed_font_source(source, text)
        except FontEmbedError as e:
            logger.error(str(e))
            causes.append(str(e))
            continue
        logger.info(f"成功加载字体: {source}")
        return font_name

    detail = "; ".join(causes) if causes else "未配置首选字体"
    logger.warning(f"加载首选字体失败，回退到标准字体 {app_config.FALLBACK_FONT_NAME}: {detail}")
    events.append(FallbackEvent(kind=FallbackKind.FONT_FALLBACK, detail=detail))
    return None


def fallback_font_supports(text: str) -> bool:
    """标准字体只能渲染 WinAnsi 范围内的字符"""
    try:
        text.encode(app_config.FALLBACK_FONT_ENCODING)
    except UnicodeEncodeError:
        return False
    return True


def get_page_geometry(page: PageObject) -> PageGeometry:
    box = page.mediabox
    return PageGeometry(float(box.width), float(box.height))


def _draw_stamp(
    c: canvas.Canvas,
    text: str,
    position: StampPosition,
    font_name: str,
    color: RGBColor,
    opacity: float,
    rotation: float
):
    """在落点处绘制一段文字，以落点为原点旋转"""
    c.saveState()
    c.setFillColorRGB(color.r, color.g, color.b)
    c.setFillAlpha(opacity)
    c.setFont(font_name, position.size)
    c.translate(position.x, position.y)
    c.rotate(rotation)
    c.drawString(0, 0, text)
    c.restoreState()


def stamp_page(
    page: PageObject,
    page_number: int,
    text: str,
    font_name: str,
    color: RGBColor,
    options: WatermarkOptions,
    diagnostic: bool = False,
    rng=None
) -> PageReport:
    """为单页生成水印层并合并到页面上"""
    geometry = get_page_geometry(page)
    positions = generate_positions(
        geometry.width, geometry.height, options.font_size, options.density, rng
    )

    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=geometry)
    for position in positions:
        _draw_stamp(c, text, position, font_name, color, options.opacity, options.rotation)

    if diagnostic:
        # 回退字体时右上角加一个完全不透明的测试水印，方便人工检查
        marker = StampPosition(
            geometry.width - app_config.DIAGNOSTIC_OFFSET_X,
            geometry.height - app_config.DIAGNOSTIC_OFFSET_Y,
            app_config.DIAGNOSTIC_FONT_SIZE,
        )
        _draw_stamp(
            c, app_config.DIAGNOSTIC_TEXT, marker, app_config.FALLBACK_FONT_NAME,
            DIAGNOSTIC_COLOR, 1.0, 0
        )
    c.save()

    overlay = PdfReader(io.BytesIO(packet.getvalue())).pages[0]
    page.merge_page(overlay)

    logger.info(f"处理第{page_number}页，尺寸: {geometry.width}x{geometry.height}，水印数: {len(positions)}")
    return PageReport(
        page_number=page_number,
        width=geometry.width,
        height=geometry.height,
        stamps=len(positions),
        diagnostic_stamp=diagnostic,
    )


def stamp_document(
    reader: PdfReader,
    text: str,
    font_name: str,
    color: RGBColor,
    options: WatermarkOptions,
    diagnostic: bool = False,
    rng=None
) -> Tuple[PdfWriter, List[PageReport]]:
    """按文档顺序逐页添加水印（在线程池中执行）"""
    writer = PdfWriter()
    pages = []
    logger.info(f"处理PDF，共{len(reader.pages)}页")
    for page_number, page in enumerate(reader.pages, start=1):
        pages.append(stamp_page(
            page, page_number, text, font_name, color, options,
            diagnostic=diagnostic, rng=rng
        ))
        writer.add_page(page)
    return writer, pages


async def apply_watermark(
    file_data: bytes,
    filename: str,
    raw_options: Optional[Mapping[str, Any]] = None,
    *,
    font_sources: Optional[Sequence[str]] = None,
    downloader: Optional[Downloader] = None,
    rng=None
) -> WatermarkResult:
    """
    为PDF添加水印

    Args:
        file_data: PDF文件二进制数据
        filename: 原始文件名，输出文件名为 watermarked_<filename>
        raw_options: 未经处理的水印配置（表单或JSON中的原始值）
        font_sources: 首选字体来源（本地路径或URL），None 时自动查找
        downloader: 下载协作方，保存成功后才会调用
        rng: 随机数来源，密度为5时使用

    Returns:
        处理结果，包含输出内容和降级事件

    Raises:
        DocumentLoadError: 文件不是有效的PDF
        DocumentSaveError: 序列化失败
    """
    options = normalize_options(raw_options)
    logger.info(f"水印配置: {options}")
    events: List[FallbackEvent] = []
    loop = asyncio.get_running_loop()

    reader = await loop.run_in_executor(thread_pool, load_document, file_data)

    if font_sources is None:
        font_sources = await loop.run_in_executor(thread_pool, discover_font_sources)
    font_name = await load_preferred_font(font_sources, options.text, events)
    using_fallback_font = font_name is None

    text = options.text
    if using_fallback_font:
        font_name = app_config.FALLBACK_FONT_NAME
        if not fallback_font_supports(text):
            logger.warning(f"标准字体无法渲染水印文字 {text!r}，替换为 {app_config.FALLBACK_TEXT}")
            events.append(FallbackEvent(
                kind=FallbackKind.TEXT_SUBSTITUTED,
                detail=f"{text!r} -> {app_config.FALLBACK_TEXT!r}",
            ))
            text = app_config.FALLBACK_TEXT

    color, reason = parse_color_checked(options.color)
    if reason:
        events.append(FallbackEvent(kind=FallbackKind.INVALID_COLOR, detail=reason))

    writer, pages = await loop.run_in_executor(
        thread_pool, stamp_document,
        reader, text, font_name, color, options, using_fallback_font, rng
    )

    content = await loop.run_in_executor(thread_pool, save_document, writer)

    output_filename = generate_output_filename(filename)
    download_url = None
    if downloader is not None:
        download_url = downloader(content, app_config.OUTPUT_MEDIA_TYPE, output_filename)

    return WatermarkResult(
        filename=output_filename,
        content=content,
        page_count=len(pages),
        pages=pages,
        using_fallback_font=using_fallback_font,
        rendered_text=text,
        color=color,
        events=events,
        download_url=download_url,
    )
