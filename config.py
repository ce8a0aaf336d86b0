"""
PDF水印服务配置文件
"""
import os
from pathlib import Path

# 服务配置
HOST = os.getenv("WATERMARK_HOST", "0.0.0.0")
PORT = int(os.getenv("WATERMARK_PORT", "9996"))
RELOAD = os.getenv("WATERMARK_RELOAD", "false").lower() in ("1", "true", "yes")

# 下载URL前缀配置
DOWNLOAD_URL_PREFIX = os.getenv("DOWNLOAD_URL_PREFIX", "http://127.0.0.1:9996/download")

# 文件存储配置
BASE_DIR = Path(__file__).parent
OUTPUT_DIR = BASE_DIR / "output"

# 确保目录存在
OUTPUT_DIR.mkdir(exist_ok=True)

# 线程池配置
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "10"))

# 支持的文件类型
SUPPORTED_DOCUMENT_EXTENSIONS = {".pdf"}
SUPPORTED_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
OUTPUT_MEDIA_TYPE = "application/pdf"
OUTPUT_FILENAME_PREFIX = "watermarked_"

# 文件大小限制 (50MB)
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(50 * 1024 * 1024)))

# 文件保留时间 (秒)
FILE_RETENTION_SECONDS = int(os.getenv("FILE_RETENTION_SECONDS", "3600"))

# 过期下载目录的清理间隔 (秒)
CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))

# 水印默认配置（归一化时的回退值）
DEFAULT_WATERMARK_CONFIG = {
    "text": "水印文本",
    "color": "#000000",
    "opacity": 0.5,
    "font_size": 50,
    "rotation": -45,
    "density": 3,
}
MIN_DENSITY = 1
MAX_DENSITY = 5

# 首选字体（支持中文），可以是本地路径或 http(s) URL
FONT_ASSET = os.getenv("FONT_ASSET", str(BASE_DIR / "assets" / "fonts" / "simhei.ttf"))
# 自定义字体路径（可选），如果设置将优先使用此字体
CUSTOM_FONT_PATH = os.getenv("CUSTOM_FONT_PATH", "")
# 远程字体下载超时 (秒)
FONT_FETCH_TIMEOUT = float(os.getenv("FONT_FETCH_TIMEOUT", "60"))

# 回退字体：reportlab 内置标准字体，只覆盖 WinAnsi 字符
FALLBACK_FONT_NAME = "Helvetica-Bold"
FALLBACK_FONT_ENCODING = "cp1252"
# 回退字体无法渲染水印文字时的替换文字
FALLBACK_TEXT = "CONFIDENTIAL"

# 使用回退字体时在右上角绘制的诊断水印
DIAGNOSTIC_TEXT = "TEST WATERMARK"
DIAGNOSTIC_FONT_SIZE = 20
DIAGNOSTIC_OFFSET_X = 200
DIAGNOSTIC_OFFSET_Y = 50
