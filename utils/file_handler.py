"""
文件处理工具
"""
import re
import glob
import asyncio
import time
import uuid
import logging
import httpx
from pathlib import Path
from typing import List, Optional

import config
from errors import FileReadError, FileTooLargeError, InvalidFileError

logger = logging.getLogger(__name__)

# 系统中文字体候选（TTF/TTC）
CHINESE_FONT_PATHS = [
    # Docker 容器内置字体
    "/usr/share/fonts/chinese/LXGWWenKai-Regular.ttf",  # 霞鹜文楷
    # Windows
    "C:/Windows/Fonts/simhei.ttf",    # 黑体
    "C:/Windows/Fonts/msyh.ttc",      # 微软雅黑
    "C:/Windows/Fonts/simsun.ttc",    # 宋体
    # macOS
    "/System/Library/Fonts/STHeiti Light.ttc",      # 华文黑体
    "/Library/Fonts/Arial Unicode.ttf",
]


def get_file_extension(filename: str) -> str:
    """获取文件扩展名"""
    return Path(filename).suffix.lower()


def validate_pdf_upload(filename: Optional[str], content_type: Optional[str], size: Optional[int] = None):
    """检查上传文件是否为PDF，不是则抛出 InvalidFileError"""
    extension = get_file_extension(filename or "")
    media_type = (content_type or "").split(";")[0].strip().lower()

    if extension not in config.SUPPORTED_DOCUMENT_EXTENSIONS and media_type not in config.SUPPORTED_CONTENT_TYPES:
        raise InvalidFileError(f"不支持的文件类型: {extension or media_type or '未知'}，请选择PDF文件")

    if size is not None:
        if size == 0:
            raise InvalidFileError("文件为空")
        if size > config.MAX_FILE_SIZE:
            raise FileTooLargeError("文件大小超过限制")


async def read_upload(upload) -> bytes:
    """读取上传文件的全部内容"""
    try:
        return await upload.read()
    except Exception as e:
        raise FileReadError(f"读取文件失败: {e}") from e


def generate_output_filename(original_filename: str) -> str:
    """生成输出文件名: watermarked_<原文件名>"""
    base_name = Path(original_filename or "document.pdf").name
    return f"{config.OUTPUT_FILENAME_PREFIX}{base_name}"


def _find_cjk_fonts() -> List[str]:
    """动态查找系统中的 TTF/TTC 字体"""
    patterns = [
        "/usr/share/fonts/**/*.ttf",
        "/usr/share/fonts/**/*.ttc",
    ]
    found = []
    for pattern in patterns:
        found.extend(glob.glob(pattern, recursive=True))
    return sorted(found)


def discover_font_sources() -> List[str]:
    """按优先级列出首选字体来源（本地路径或 URL）"""
    sources = []
    if config.CUSTOM_FONT_PATH:
        sources.append(config.CUSTOM_FONT_PATH)
    if config.FONT_ASSET:
        sources.append(config.FONT_ASSET)
    sources.extend(path for path in CHINESE_FONT_PATHS if Path(path).exists())
    # 动态查找的字体作为后备
    sources.extend(path for path in _find_cjk_fonts() if path not in sources)
    logger.info(f"字体候选列表: {sources}")
    return sources


async def fetch_font_asset(source: str) -> bytes:
    """
    获取字体文件内容
    source 为 http(s) URL 时下载，否则按本地路径读取
    """
    if source.startswith(("http://", "https://")):
        async with httpx.AsyncClient(timeout=config.FONT_FETCH_TIMEOUT, follow_redirects=True) as client:
            response = await client.get(source)
            response.raise_for_status()
            return response.content

    # 本地读取放到默认执行器，避免阻塞事件循环
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, Path(source).read_bytes)


def save_output_file(content: bytes, filename: str) -> str:
    """保存输出文件到独立的令牌目录，返回令牌"""
    token = uuid.uuid4().hex
    output_dir = config.OUTPUT_DIR / token
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / filename).write_bytes(content)
    return token


_TOKEN_RE = re.compile(r"^[0-9a-f]{32}$")


def get_output_path(token: str, filename: str) -> Optional[Path]:
    """根据令牌和文件名定位输出文件，参数不合法时返回 None"""
    if not _TOKEN_RE.match(token) or Path(filename).name != filename:
        return None
    return config.OUTPUT_DIR / token / filename


def get_download_url(token: str, filename: str) -> str:
    """生成下载URL"""
    return f"{config.DOWNLOAD_URL_PREFIX}/{token}/{filename}"


def offer_download(content: bytes, media_type: str, filename: str) -> str:
    """下载协作方：保存生成的文件并返回下载地址"""
    token = save_output_file(content, filename)
    logger.info(f"已生成下载文件 {filename} ({media_type}, {len(content)} 字节)")
    return get_download_url(token, filename)


def cleanup_old_files() -> int:
    """删除超过保留期的下载文件和空令牌目录，返回删除的文件数"""
    current_time = time.time()
    removed = 0

    directory = config.OUTPUT_DIR
    if not directory.exists():
        return removed

    for file_path in directory.rglob("*"):
        if not file_path.is_file():
            continue
        file_age = current_time - file_path.stat().st_mtime
        if file_age > config.FILE_RETENTION_SECONDS:
            try:
                file_path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"清理文件失败 {file_path}: {e}")

    # 删除已清空的令牌目录
    for sub_dir in directory.iterdir():
        if sub_dir.is_dir() and not any(sub_dir.iterdir()):
            sub_dir.rmdir()

    return removed
