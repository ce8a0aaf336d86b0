"""
水印处理异常定义
"""


class WatermarkError(Exception):
    """水印处理失败的基类，消息可直接展示给用户"""


class InvalidFileError(WatermarkError):
    """上传的文件不是PDF（在处理开始前就会抛出）"""


class FileReadError(WatermarkError):
    """读取上传文件失败"""


class DocumentLoadError(WatermarkError):
    """文件内容无法解析为有效的PDF文档"""


class FontEmbedError(WatermarkError):
    """首选字体下载或嵌入失败，可恢复：会回退到标准字体"""


class DocumentSaveError(WatermarkError):
    """PDF序列化失败"""


class FileTooLargeError(InvalidFileError):
    """上传文件超过大小限制"""
