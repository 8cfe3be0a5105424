"""
Tests for decoding, persistence and metadata transplant.
"""

from datetime import datetime

import cv2
import numpy as np
import pytest
from PIL import ExifTags, Image

from zeroblur.errors import DecodeError, NoValidFrameError
from zeroblur.persistence import (
    extract_exif,
    output_filename,
    save_result,
    save_with_metadata,
)
from zeroblur.preprocess import (
    decode_image,
    ensure_same_size,
    list_image_files,
    load_image,
    load_image_stack,
)


def _png_bytes(rgb):
    ok, encoded = cv2.imencode(".png", cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
    assert ok
    return encoded.tobytes()


def _write_jpeg_with_exif(path, rgb, make="Acme", model="Lens 1"):
    exif = Image.Exif()
    exif[ExifTags.Base.Make] = make
    exif[ExifTags.Base.Model] = model
    exif[ExifTags.Base.Software] = "not copied"
    Image.fromarray(rgb).save(path, format="JPEG", quality=95, exif=exif.tobytes())


@pytest.fixture
def color_image():
    rgb = np.zeros((12, 16, 3), dtype=np.uint8)
    rgb[..., 0] = 200
    rgb[..., 1] = 50
    rgb[..., 2] = 10
    return rgb


class TestDecode:
    """Tests for the decoder."""

    def test_decode_returns_rgb(self, color_image):
        decoded = decode_image(_png_bytes(color_image))
        assert decoded.shape == (12, 16, 3)
        assert decoded.dtype == np.uint8
        np.testing.assert_array_equal(decoded, color_image)

    def test_garbage_raises(self):
        with pytest.raises(DecodeError):
            decode_image(b"not an image")

    def test_empty_raises(self):
        with pytest.raises(DecodeError):
            decode_image(b"")

    def test_missing_file(self, tmp_path):
        with pytest.raises(DecodeError):
            load_image(tmp_path / "missing.png")

    def test_load_image(self, tmp_path, color_image):
        path = tmp_path / "a.png"
        path.write_bytes(_png_bytes(color_image))
        np.testing.assert_array_equal(load_image(path), color_image)


class TestLoadImageStack:
    """Tests for burst loading."""

    def test_skips_failures_and_keeps_sources(self, tmp_path, color_image):
        good_a = tmp_path / "a.png"
        bad = tmp_path / "b.png"
        good_c = tmp_path / "c.png"
        good_a.write_bytes(_png_bytes(color_image))
        bad.write_bytes(b"corrupt")
        good_c.write_bytes(_png_bytes(color_image))
        messages = []

        stack = load_image_stack([good_a, bad, good_c], progress=messages.append)

        assert len(stack) == 2
        assert stack.sources == [good_a, good_c]
        assert "Failed to decode image 1" in messages
        assert "Loading image 3..." in messages

    def test_bytes_sources(self, color_image):
        stack = load_image_stack([_png_bytes(color_image), _png_bytes(color_image)])
        assert stack.sources == ["<bytes #0>", "<bytes #1>"]

    def test_nothing_decodes(self):
        with pytest.raises(NoValidFrameError):
            load_image_stack([b"x", b"y"])

    def test_ensure_same_size(self, color_image):
        other = np.zeros((24, 32, 3), dtype=np.uint8)
        frames = ensure_same_size([color_image, other])
        assert frames[1].shape == color_image.shape
        assert frames[0] is color_image

    def test_list_image_files(self, tmp_path):
        for name in ("b.JPG", "a.png", "notes.txt", "c.tif"):
            (tmp_path / name).write_bytes(b"")
        assert [p.name for p in list_image_files(tmp_path)] == ["a.png", "b.JPG", "c.tif"]


class TestPersistence:
    """Tests for writing results and transplanting metadata."""

    def test_output_filename(self):
        when = datetime(2024, 3, 9, 14, 5, 7)
        assert output_filename(when) == "ZeroBlur_20240309_140507.jpg"
        assert output_filename(when, prefix="Stack", suffix=".png") == "Stack_20240309_140507.png"

    def test_save_result(self, tmp_path, color_image):
        path = save_result(color_image, datetime(2024, 1, 2, 3, 4, 5), tmp_path / "out")

        assert path == tmp_path / "out" / "ZeroBlur_20240102_030405.jpg"
        with Image.open(path) as img:
            assert img.format == "JPEG"
            assert img.size == (16, 12)

    def test_extract_exif_subset(self, tmp_path, color_image):
        source = tmp_path / "ref.jpg"
        _write_jpeg_with_exif(source, color_image)

        exif_bytes = extract_exif(source)
        assert exif_bytes is not None

        target = save_result(color_image, datetime(2024, 1, 1), tmp_path, exif=exif_bytes)
        with Image.open(target) as img:
            exif = img.getexif()
        assert exif[ExifTags.Base.Make] == "Acme"
        assert exif[ExifTags.Base.Model] == "Lens 1"
        assert ExifTags.Base.Software not in exif

    def test_extract_exif_none(self, tmp_path, color_image):
        source = tmp_path / "plain.png"
        Image.fromarray(color_image).save(source)
        assert extract_exif(source) is None

    def test_save_with_metadata(self, tmp_path, color_image):
        source = tmp_path / "ref.jpg"
        _write_jpeg_with_exif(source, color_image, make="Zeta")

        path = save_with_metadata(color_image, datetime(2024, 5, 6), tmp_path / "out", source)

        with Image.open(path) as img:
            assert img.getexif()[ExifTags.Base.Make] == "Zeta"

    def test_metadata_failure_still_saves(self, tmp_path, color_image, caplog):
        source = tmp_path / "broken.jpg"
        source.write_bytes(b"not a jpeg")

        path = save_with_metadata(color_image, datetime(2024, 5, 6), tmp_path / "out", source)

        assert path.exists()
        assert "Failed to copy EXIF" in caplog.text
