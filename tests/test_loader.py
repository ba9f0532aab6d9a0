import logging
import threading
from unittest import mock

import pytest
import requests

from memory_composer.cache import ImageCache
from memory_composer.errors import ImageDecodeFailure, NoUsableImages, RenderCancelled
from memory_composer.loader import ResourceLoader
from memory_composer.models import ImageReference, references_from_records


def test_partial_failure_keeps_order(image_bytes, tmp_path, caplog):
    refs = [
        ImageReference(image_bytes((255, 0, 0)), label="red"),
        ImageReference(b"definitely not an image", label="junk"),
        ImageReference(image_bytes((0, 255, 0)), label="green"),
        ImageReference(str(tmp_path / "missing.png"), label="missing"),
        ImageReference(image_bytes((0, 0, 255)), label="blue"),
    ]
    with caplog.at_level(logging.WARNING):
        report = ResourceLoader().load(refs)

    assert report.attempted == 5
    assert report.succeeded_count == 3
    assert [d.index for d in report.succeeded] == [0, 2, 4]
    assert [d.image.getpixel((0, 0)) for d in report.succeeded] == [
        (255, 0, 0),
        (0, 255, 0),
        (0, 0, 255),
    ]
    assert [f.index for f in report.failed] == [1, 3]
    assert all(isinstance(f.error, ImageDecodeFailure) for f in report.failed)
    assert "Skipping image 1 (junk)" in caplog.text
    assert report.to_dict()["failed"] == 2


def test_no_usable_images_carries_report(tmp_path):
    refs = [ImageReference(b""), ImageReference(str(tmp_path / "nope.jpg"))]
    with pytest.raises(NoUsableImages) as exc_info:
        ResourceLoader().load_or_raise(refs)
    assert str(exc_info.value) == "cannot compose: no images available"
    assert exc_info.value.attempted == 2
    assert exc_info.value.report.failed_count == 2


def test_empty_batch_returns_empty_report():
    report = ResourceLoader().load([])
    assert report.attempted == 0


def test_data_url_reference(image_bytes):
    ref = ImageReference.from_data_url(image_bytes((10, 20, 30)))
    decoded = ResourceLoader().load_one(ref)
    assert decoded.image.getpixel((0, 0)) == (10, 20, 30)
    assert (decoded.width, decoded.height) == (40, 30)


def test_file_reference(image_file):
    path = image_file()
    decoded = ResourceLoader().load_one(ImageReference(path))
    assert decoded.image.size == (40, 30)


def test_alpha_is_kept(image_bytes):
    data = image_bytes((0, 0, 0, 0), mode="RGBA")
    decoded = ResourceLoader().load_one(ImageReference(data))
    assert decoded.image.mode == "RGBA"


def test_http_reference_uses_timeout(image_bytes):
    response = mock.Mock(content=image_bytes((1, 2, 3)))
    with mock.patch("memory_composer.loader.requests.get", return_value=response) as get:
        decoded = ResourceLoader(timeout=3).load_one(ImageReference("https://example.com/a.png"))
    get.assert_called_once_with("https://example.com/a.png", timeout=3)
    response.raise_for_status.assert_called_once()
    assert decoded.image.getpixel((0, 0)) == (1, 2, 3)


def test_http_error_becomes_failure():
    response = mock.Mock()
    response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
    session = mock.Mock()
    session.get.return_value = response
    loader = ResourceLoader(session=session)
    report = loader.load([ImageReference("http://example.com/missing.png")])
    assert report.succeeded_count == 0
    assert "HTTPError" in report.failed[0].reason


def test_disallowed_scheme_is_rejected():
    with pytest.raises(ImageDecodeFailure):
        ResourceLoader().load_one(ImageReference("ftp://example.com/a.png"))


def test_oversized_image_is_rejected(image_bytes):
    loader = ResourceLoader()
    loader.MAX_IMAGE_SIZE = 20
    with pytest.raises(ImageDecodeFailure, match="exceeds"):
        loader.load_one(ImageReference(image_bytes()))


def test_cache_skips_second_decode(image_bytes):
    cache = ImageCache(max_size=4)
    loader = ResourceLoader(cache)
    ref = ImageReference(image_bytes())
    loader.load([ref])
    assert ref.digest() in cache
    with mock.patch.object(loader, "decode") as decode:
        report = loader.load([ref])
    decode.assert_not_called()
    assert report.succeeded_count == 1


def test_cancel_before_start(image_bytes):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RenderCancelled):
        ResourceLoader().load([ImageReference(image_bytes())], cancel)


def test_cancel_while_loading(image_bytes):
    cancel = threading.Event()
    release = threading.Event()
    loader = ResourceLoader(max_workers=1)

    def slow_fetch(reference):
        cancel.set()
        release.wait(5)
        return image_bytes()

    with mock.patch.object(loader, "fetch_bytes", side_effect=slow_fetch):
        try:
            with pytest.raises(RenderCancelled):
                loader.load([ImageReference(b"a"), ImageReference(b"b")], cancel)
        finally:
            release.set()


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        ResourceLoader(max_workers=0)


def test_references_from_records_filters_media():
    records = [
        {"id": 1, "type": "photo", "mediaUrl": "data:image/png;base64,AAAA"},
        {"id": 2, "type": "text", "content": "hello"},
        {"id": 3, "type": "video", "mediaUrl": "https://example.com/v.mp4"},
        {"id": 4, "type": "photo"},
    ]
    refs = references_from_records(records)
    assert [r.label for r in refs] == ["1"]

    refs = references_from_records(records, include_video=True)
    assert [r.label for r in refs] == ["1", "3"]
    assert refs[1].is_video


def test_references_from_record_objects():
    record = mock.Mock(id="m1", type="photo", mediaUrl="/tmp/a.png")
    (ref,) = references_from_records([record])
    assert ref.source == "/tmp/a.png"
    assert ref.kind == "path"
