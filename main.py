"""
FastAPI PDF水印服务主入口
"""
import asyncio
import logging
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, UploadFile, File, Form, HTTPException
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware

import config
from errors import (
    DocumentLoadError, DocumentSaveError, FileReadError, FileTooLargeError,
    InvalidFileError
)
from models import WatermarkResponse
from utils.file_handler import (
    cleanup_old_files, get_output_path, offer_download, read_upload,
    validate_pdf_upload
)
from services.watermark_service import apply_watermark, thread_pool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动时清掉上次遗留的过期下载目录，运行期间定时清理，退出时停止线程池"""
    removed = cleanup_old_files()
    logger.info(f"启动清理完成，删除过期文件 {removed} 个")

    cleanup_task = asyncio.create_task(expire_download_tokens())

    yield

    cleanup_task.cancel()
    thread_pool.shutdown(wait=False)


async def expire_download_tokens():
    """按 CLEANUP_INTERVAL_SECONDS 周期删除超过保留期的令牌目录"""
    while True:
        await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(thread_pool, cleanup_old_files)
        if removed:
            logger.info(f"已删除过期下载文件 {removed} 个")


app = FastAPI(
    title="PDF水印服务 API",
    description="为PDF的每一页添加文字水印（颜色、透明度、字号、旋转角度、密度可配置）",
    version="1.0.0",
    lifespan=lifespan
)

# 下载链接由前端页面直接打开，允许跨域访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.post("/api/watermark/file", response_model=WatermarkResponse, summary="上传PDF添加水印")
async def add_watermark_by_file(
    file: UploadFile = File(..., description="要添加水印的PDF文件"),
    text: Optional[str] = Form(default=None, description="水印文字"),
    color: Optional[str] = Form(default=None, description="颜色，#RRGGBB / #RGB / r,g,b(0-1)"),
    opacity: Optional[str] = Form(default=None, description="透明度 0-1"),
    font_size: Optional[str] = Form(default=None, description="字体大小"),
    rotation: Optional[str] = Form(default=None, description="旋转角度"),
    density: Optional[str] = Form(default=None, description="水印密度 1-5")
):
    """
    上传PDF并添加水印

    所有配置项都按原始字符串接收，无效值会回退到默认值：
    透明度 0.5、字号 50、旋转 -45、密度 3、颜色黑色
    """
    original_filename = file.filename or "document.pdf"
    try:
        # 选择文件时就检查类型
        validate_pdf_upload(file.filename, file.content_type, file.size)

        file_data = await read_upload(file)
        validate_pdf_upload(original_filename, file.content_type, len(file_data))

        result = await apply_watermark(
            file_data,
            original_filename,
            {
                "text": text,
                "color": color,
                "opacity": opacity,
                "font_size": font_size,
                "rotation": rotation,
                "density": density,
            },
            downloader=offer_download,
        )

        return WatermarkResponse(
            success=True,
            message="水印添加成功",
            download_url=result.download_url,
            filename=result.filename,
            page_count=result.page_count,
            using_fallback_font=result.using_fallback_font,
            events=result.events
        )

    except FileTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except InvalidFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FileReadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DocumentLoadError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except DocumentSaveError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"处理失败: {str(e)}")


@app.get("/download/{token}/{filename}", summary="下载文件")
async def download_file_endpoint(token: str, filename: str):
    """下载已处理的文件"""
    file_path = get_output_path(token, filename)

    if file_path is None or not file_path.is_file():
        raise HTTPException(status_code=404, detail="文件不存在或已过期")

    return FileResponse(
        path=file_path,
        filename=filename,
        media_type=config.OUTPUT_MEDIA_TYPE
    )


@app.get("/api/config", summary="获取服务配置")
async def get_config():
    """获取当前服务配置"""
    return {
        "max_file_size": config.MAX_FILE_SIZE,
        "max_file_size_mb": config.MAX_FILE_SIZE / (1024 * 1024),
        "file_retention_seconds": config.FILE_RETENTION_SECONDS,
        "supported_document_formats": sorted(config.SUPPORTED_DOCUMENT_EXTENSIONS),
        "default_watermark_config": config.DEFAULT_WATERMARK_CONFIG,
        "density_range": [config.MIN_DENSITY, config.MAX_DENSITY],
        "max_workers": config.MAX_WORKERS,
        "download_url_prefix": config.DOWNLOAD_URL_PREFIX
    }


@app.get("/health", summary="健康检查")
async def health_check():
    """服务健康检查，输出目录不可用时下载链接无法生成"""
    output_ready = config.OUTPUT_DIR.is_dir()
    return {
        "status": "healthy" if output_ready else "degraded",
        "service": "pdf-watermark-service",
        "output_dir_ready": output_ready
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.RELOAD
    )
