import asyncio
import io
import random
import threading

import pytest
from PyPDF2 import PdfReader, PdfWriter
from reportlab.pdfbase.ttfonts import TTFont

import config
from errors import DocumentLoadError, DocumentSaveError
from models import FallbackKind, RGBColor
from services import watermark_service
from services.watermark_service import apply_watermark, fallback_font_supports, missing_glyphs

DRAFT_OPTIONS = {
    "text": "DRAFT",
    "color": "#FF0000",
    "opacity": 0.5,
    "fontSize": 40,
    "rotation": 30,
    "density": 1,
}


@pytest.fixture
def draw_calls(monkeypatch):
    """记录每一次文字绘制，同时保留真实绘制"""
    calls = []
    original = watermark_service._draw_stamp

    def recording_draw(c, text, position, font_name, color, opacity, rotation):
        calls.append({
            "text": text,
            "position": position,
            "font_name": font_name,
            "color": color,
            "opacity": opacity,
            "rotation": rotation,
        })
        original(c, text, position, font_name, color, opacity, rotation)

    monkeypatch.setattr(watermark_service, "_draw_stamp", recording_draw)
    return calls


class RecordingDownloader:
    def __init__(self):
        self.calls = []

    def __call__(self, content, media_type, filename):
        self.calls.append((content, media_type, filename))
        return f"http://testserver/download/{filename}"


def run(coro):
    return asyncio.run(coro)


def test_end_to_end_with_embedded_font(two_page_pdf, vera_font_path, draw_calls):
    downloader = RecordingDownloader()

    result = run(apply_watermark(
        two_page_pdf, "report.pdf", DRAFT_OPTIONS,
        font_sources=[vera_font_path], downloader=downloader,
    ))

    assert result.filename == "watermarked_report.pdf"
    assert result.download_url == "http://testserver/download/watermarked_report.pdf"
    assert result.using_fallback_font is False
    assert result.events == []
    assert result.color == RGBColor(1.0, 0.0, 0.0)
    assert [page.stamps for page in result.pages] == [5, 5]

    assert len(draw_calls) == 10
    for call in draw_calls:
        assert call["text"] == "DRAFT"
        assert call["color"] == RGBColor(1.0, 0.0, 0.0)
        assert call["opacity"] == 0.5
        assert call["rotation"] == 30
        assert call["font_name"].startswith("Watermark-")

    reader = PdfReader(io.BytesIO(result.content))
    assert len(reader.pages) == 2
    for page in reader.pages:
        assert float(page.mediabox.width) == 600
        assert float(page.mediabox.height) == 800

    assert downloader.calls == [(result.content, "application/pdf", "watermarked_report.pdf")]


def test_fallback_font_substitutes_cjk_text(two_page_pdf, tmp_path, draw_calls):
    result = run(apply_watermark(
        two_page_pdf, "合同.pdf", {"text": "机密文件", "density": 1},
        font_sources=[str(tmp_path / "simhei.ttf")],
    ))

    assert result.using_fallback_font is True
    assert result.rendered_text == config.FALLBACK_TEXT
    assert result.has_event(FallbackKind.FONT_FALLBACK)
    assert result.has_event(FallbackKind.TEXT_SUBSTITUTED)

    watermark_calls = [call for call in draw_calls if call["text"] != config.DIAGNOSTIC_TEXT]
    assert len(watermark_calls) == 10
    assert all(call["text"] == "CONFIDENTIAL" for call in watermark_calls)
    assert all(call["font_name"] == "Helvetica-Bold" for call in watermark_calls)


def test_font_without_glyphs_for_text_falls_back(two_page_pdf, vera_font_path, draw_calls):
    result = run(apply_watermark(
        two_page_pdf, "a.pdf", {"text": "水印文本", "density": 1},
        font_sources=[vera_font_path],
    ))

    assert result.using_fallback_font is True
    assert result.rendered_text == "CONFIDENTIAL"
    assert result.has_event(FallbackKind.TEXT_SUBSTITUTED)
    fallback = [event for event in result.events if event.kind == FallbackKind.FONT_FALLBACK]
    assert len(fallback) == 1
    assert "字形" in fallback[0].detail
    assert vera_font_path in fallback[0].detail
    assert all(call["font_name"] == "Helvetica-Bold" for call in draw_calls)


def test_missing_glyphs_ignores_whitespace(vera_font_path):
    font = TTFont("VeraGlyphCheck", vera_font_path)

    assert missing_glyphs(font, "DRAFT copy") == []
    assert set(missing_glyphs(font, "Vera 水印")) == {"水", "印"}


def test_font_and_pages_are_handled_off_the_event_loop(two_page_pdf, vera_font_path, monkeypatch):
    loop_thread = threading.get_ident()
    threads = {"register_font": set(), "draw": set(), "discover": set()}
    original_register = watermark_service.register_font
    original_draw = watermark_service._draw_stamp

    def recording_register(font_data, text):
        threads["register_font"].add(threading.get_ident())
        return original_register(font_data, text)

    def recording_draw(*args):
        threads["draw"].add(threading.get_ident())
        original_draw(*args)

    def recording_discover():
        threads["discover"].add(threading.get_ident())
        return [vera_font_path]

    monkeypatch.setattr(watermark_service, "register_font", recording_register)
    monkeypatch.setattr(watermark_service, "_draw_stamp", recording_draw)
    monkeypatch.setattr(watermark_service, "discover_font_sources", recording_discover)

    result = run(apply_watermark(two_page_pdf, "a.pdf", DRAFT_OPTIONS))

    assert result.using_fallback_font is False
    assert [page.page_number for page in result.pages] == [1, 2]
    for name, idents in threads.items():
        assert idents, name
        assert loop_thread not in idents, name


def test_fallback_font_draws_diagnostic_stamp(two_page_pdf, draw_calls):
    result = run(apply_watermark(two_page_pdf, "a.pdf", DRAFT_OPTIONS, font_sources=[]))

    assert result.rendered_text == "DRAFT"
    assert not result.has_event(FallbackKind.TEXT_SUBSTITUTED)
    assert all(page.diagnostic_stamp for page in result.pages)

    markers = [call for call in draw_calls if call["text"] == "TEST WATERMARK"]
    assert len(markers) == 2
    for marker in markers:
        assert marker["position"] == (400, 750, 20)
        assert marker["opacity"] == 1.0
        assert marker["color"] == RGBColor(1.0, 0.0, 0.0)
        assert marker["rotation"] == 0


def test_unreadable_font_file_falls_back(two_page_pdf, tmp_path):
    broken = tmp_path / "broken.ttf"
    broken.write_bytes(b"not a font")

    result = run(apply_watermark(two_page_pdf, "a.pdf", DRAFT_OPTIONS, font_sources=[str(broken)]))

    assert result.using_fallback_font is True
    event = next(e for e in result.events if e.kind == FallbackKind.FONT_FALLBACK)
    assert "字体嵌入失败" in event.detail


def test_second_font_source_is_used_when_first_fails(two_page_pdf, tmp_path, vera_font_path):
    result = run(apply_watermark(
        two_page_pdf, "a.pdf", DRAFT_OPTIONS,
        font_sources=[str(tmp_path / "missing.ttf"), vera_font_path],
    ))

    assert result.using_fallback_font is False
    assert result.events == []


def test_invalid_color_is_reported(two_page_pdf, vera_font_path):
    options = dict(DRAFT_OPTIONS, color="#12")

    result = run(apply_watermark(two_page_pdf, "a.pdf", options, font_sources=[vera_font_path]))

    assert result.color == RGBColor(0.0, 0.0, 0.0)
    assert [event.kind for event in result.events] == [FallbackKind.INVALID_COLOR]


def test_density_five_uses_random_source(two_page_pdf, vera_font_path):
    options = dict(DRAFT_OPTIONS, density=5)

    first = run(apply_watermark(
        two_page_pdf, "a.pdf", options, font_sources=[vera_font_path], rng=random.Random(3)
    ))
    second = run(apply_watermark(
        two_page_pdf, "a.pdf", options, font_sources=[vera_font_path], rng=random.Random(3)
    ))

    assert [page.stamps for page in first.pages] == [page.stamps for page in second.pages]
    assert first.pages[0].stamps > 15


def test_invalid_pdf_raises_load_error():
    downloader = RecordingDownloader()

    with pytest.raises(DocumentLoadError):
        run(apply_watermark(b"this is not a pdf", "a.pdf", DRAFT_OPTIONS, font_sources=[], downloader=downloader))
    assert downloader.calls == []


def test_pdf_without_pages_raises_load_error():
    output = io.BytesIO()
    PdfWriter().write(output)

    with pytest.raises(DocumentLoadError):
        run(apply_watermark(output.getvalue(), "empty.pdf", DRAFT_OPTIONS, font_sources=[]))


def test_save_failure_raises_and_skips_download(two_page_pdf, monkeypatch):
    downloader = RecordingDownloader()

    def failing_write(self, stream):
        raise OSError("disk full")

    monkeypatch.setattr(watermark_service.PdfWriter, "write", failing_write)

    with pytest.raises(DocumentSaveError):
        run(apply_watermark(two_page_pdf, "a.pdf", DRAFT_OPTIONS, font_sources=[], downloader=downloader))
    assert downloader.calls == []


@pytest.mark.parametrize("text, supported", [
    ("DRAFT", True),
    ("Vertraulich, Entwürfe", True),
    ("水印文本", False),
    ("機密", False),
])
def test_fallback_font_supports(text, supported):
    assert fallback_font_supports(text) is supported
