import base64

import pytest

from image_service import (
    EmbeddedImage,
    ImageEmbedder,
    ImageRejected,
    detect_image_type,
    process_image,
    validate_image_data,
)
from page import Page


def test_detect_image_type(png_data_url, jpeg_data_url, svg_data_url, gif_data_url):
    assert detect_image_type(png_data_url) == "png"
    assert detect_image_type(jpeg_data_url) == "jpeg"
    assert detect_image_type(svg_data_url) == "svg"
    assert detect_image_type(gif_data_url) == "unknown"
    assert detect_image_type("not a data url") == "unknown"


def test_header_bytes_win_over_mime(png_data_url):
    mislabeled = png_data_url.replace("image/png", "image/jpeg", 1)
    assert detect_image_type(mislabeled) == "png"


def test_mime_decides_when_header_is_inconclusive():
    data = "data:image/jpeg;base64," + base64.b64encode(b"\x00\x01\x02\x03").decode()
    assert detect_image_type(data) == "jpeg"


@pytest.mark.parametrize(
    "data, message",
    [
        (None, "No image data provided"),
        ("", "No image data provided"),
        (123, "Invalid image data format"),
        ("iVBORw0KGgo=", "Invalid data URL format"),
    ],
)
def test_validate_image_data(data, message):
    with pytest.raises(ImageRejected, match=message):
        validate_image_data(data)


def test_validate_image_data_size_limit(png_data_url):
    with pytest.raises(ImageRejected, match="too large"):
        validate_image_data(png_data_url, max_bytes=10)
    validate_image_data(png_data_url, max_bytes=len(png_data_url))


def test_embed_png(png_data_url):
    img = ImageEmbedder().embed(Page(), png_data_url)
    assert isinstance(img, EmbeddedImage)
    assert (img.width, img.height, img.format) == (4, 2, "png")


def test_embed_jpeg(jpeg_data_url):
    img = ImageEmbedder().embed(Page(), jpeg_data_url)
    assert (img.width, img.height, img.format) == (4, 2, "jpeg")


def test_embed_caches_per_page(png_data_url):
    embedder = ImageEmbedder()
    page = Page()
    first = embedder.embed(page, png_data_url)
    assert embedder.embed(page, png_data_url) is first
    assert embedder.embed(Page(), png_data_url) is not first


@pytest.mark.parametrize(
    "data",
    [
        None,
        "",
        42,
        "image/png;base64,AAAA",
        "data:image/png;base64",
        "data:image/png;base64,AAAA",
        "data:image/png;base64,!!!!",
    ],
)
def test_bad_images_yield_none(data):
    assert ImageEmbedder().embed(Page(), data) is None


def test_svg_is_skipped(svg_data_url):
    assert ImageEmbedder().embed(Page(), svg_data_url) is None


def test_unsupported_format_is_skipped(gif_data_url):
    assert ImageEmbedder().embed(Page(), gif_data_url) is None


def test_oversized_image_is_skipped(png_data_url):
    assert ImageEmbedder(max_bytes=10).embed(Page(), png_data_url) is None


def test_process_image_accepts_known_formats(png_data_url):
    result = process_image(png_data_url, "logo")
    assert result["success"] is True
    assert result["processedImageData"] == png_data_url
    assert result["detectedType"] == "png"
    assert result["message"] == "logo image processed successfully"


def test_process_image_rejects(gif_data_url):
    assert process_image("hello") == {"success": False, "message": "Invalid data URL format"}
    assert process_image(gif_data_url)["message"] == "Unrecognized image format"
