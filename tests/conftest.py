import io
from pathlib import Path

import pytest
import reportlab
from reportlab.pdfgen import canvas

import config


def build_pdf(page_sizes) -> bytes:
    output = io.BytesIO()
    c = canvas.Canvas(output)
    for index, (width, height) in enumerate(page_sizes, start=1):
        c.setPageSize((width, height))
        c.drawString(72, 72, f"Original content, page {index}")
        c.showPage()
    c.save()
    return output.getvalue()


@pytest.fixture
def two_page_pdf() -> bytes:
    """两页 600x800 的PDF"""
    return build_pdf([(600, 800), (600, 800)])


@pytest.fixture
def vera_font_path() -> str:
    """reportlab 自带的 TrueType 字体"""
    return str(Path(reportlab.__file__).parent / "fonts" / "Vera.ttf")


@pytest.fixture
def output_dir(tmp_path, monkeypatch):
    directory = tmp_path / "output"
    directory.mkdir()
    monkeypatch.setattr(config, "OUTPUT_DIR", directory)
    monkeypatch.setattr(config, "DOWNLOAD_URL_PREFIX", "http://testserver/download")
    return directory
