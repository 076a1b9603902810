import pytest

from conftest import make_png
from image_processor import (
    LED_BUFFER_SIZE,
    NEUTRAL_FILL,
    ByteSamplerParameters,
    DecodedImage,
    buffer_to_rows,
    decode_image,
    resample_nearest,
    sample_byte_stream,
)
from pipeline_errors import DecodeUnavailable, EmptyInput, ImageTooLarge, InvalidBufferLength


def _gradient(width: int, height: int) -> DecodedImage:
    data = bytearray()
    for y in range(height):
        for x in range(width):
            data += bytes([x, y, (x + y) % 256])
    return DecodedImage(width=width, height=height, data=bytes(data))


def test_resample_output_is_768_bytes() -> None:
    for w, h in [(1, 1), (16, 16), (32, 32), (3, 1), (100, 7), (640, 480)]:
        assert len(resample_nearest(_gradient(w, h))) == LED_BUFFER_SIZE


def test_resample_picks_floor_coordinates() -> None:
    out = resample_nearest(_gradient(32, 32))
    for ty in range(16):
        for tx in range(16):
            idx = (ty * 16 + tx) * 3
            assert out[idx:idx + 3] == bytes([tx * 2, ty * 2, (tx * 2 + ty * 2) % 256])


def test_resample_upscale_repeats_pixels() -> None:
    out = resample_nearest(_gradient(2, 2), width=4, height=4)
    rows = buffer_to_rows(out, 4, 4)
    assert rows[0] == [[0, 0, 0], [0, 0, 0], [1, 0, 1], [1, 0, 1]]
    assert rows[3][3] == [1, 1, 2]


def test_resample_stretches_non_square_source() -> None:
    out = resample_nearest(_gradient(3, 1))
    rows = buffer_to_rows(out)
    assert [px[0] for px in rows[0]] == [tx * 3 // 16 for tx in range(16)]
    assert all(row == rows[0] for row in rows)


def test_resample_rejects_short_source() -> None:
    with pytest.raises(InvalidBufferLength):
        resample_nearest(DecodedImage(width=4, height=4, data=bytes(10)))


def test_resample_rejects_bad_dimensions() -> None:
    with pytest.raises(ValueError):
        resample_nearest(_gradient(4, 4), width=0, height=16)
    with pytest.raises(ValueError):
        resample_nearest(DecodedImage(width=1, height=1, data=bytes(4), channels=4))


def test_decode_image_reads_png(split_png: bytes) -> None:
    decoded = decode_image(split_png)
    assert (decoded.width, decoded.height) == (32, 32)
    assert decoded.data[:3] == bytes([255, 0, 0])
    assert decoded.data[-3:] == bytes([0, 0, 255])


def test_decode_image_rejects_garbage() -> None:
    with pytest.raises(DecodeUnavailable):
        decode_image(b"definitely not an image" * 10)
    with pytest.raises(DecodeUnavailable):
        decode_image(b"")


def test_byte_stream_single_sample_is_cycled() -> None:
    data = bytearray(1536)
    data[100] = 150
    out = sample_byte_stream(bytes(data))
    assert out == bytes([150]) * 768


def test_byte_stream_pads_cyclically() -> None:
    data = bytes(100) + bytes([30, 40, 50])
    out = sample_byte_stream(data)
    assert len(out) == 768
    assert all(out[i] == [30, 40, 50][i % 3] for i in range(768))


def test_byte_stream_without_samples_uses_neutral_fill() -> None:
    assert sample_byte_stream(bytes(2000)) == bytes([NEUTRAL_FILL]) * 768
    # shorter than the skipped header
    assert sample_byte_stream(bytes([128]) * 50) == bytes([NEUTRAL_FILL]) * 768


def test_byte_stream_values_stay_in_band() -> None:
    data = bytes(range(256)) * 40
    out = sample_byte_stream(data)
    assert len(out) == 768
    assert all(20 <= v <= 235 for v in out)


def test_byte_stream_is_deterministic() -> None:
    data = make_png((64, 48))
    assert sample_byte_stream(data) == sample_byte_stream(data)


def test_byte_stream_headroom_changes_stride() -> None:
    data = bytes(range(20, 236)) * 30
    wide = sample_byte_stream(data, params=ByteSamplerParameters(headroom=1))
    narrow = sample_byte_stream(data, params=ByteSamplerParameters(headroom=2))
    assert wide != narrow


def test_byte_stream_header_skip_is_configurable() -> None:
    data = bytes([50]) * 10 + bytes(1000)
    assert sample_byte_stream(data) == bytes([NEUTRAL_FILL]) * 768
    assert sample_byte_stream(data, params=ByteSamplerParameters(header_skip=0)) == bytes([50]) * 768


def test_byte_stream_rejects_empty_input() -> None:
    with pytest.raises(EmptyInput):
        sample_byte_stream(b"")


def test_byte_stream_negative_header_skip_starts_at_zero() -> None:
    data = bytes([60]) + bytes(1000) + bytes([77])
    out = sample_byte_stream(data, params=ByteSamplerParameters(header_skip=-1))
    # scanning never wraps around to the tail of the stream
    assert out[:3] == bytes([60, 77, 60])
    assert out == sample_byte_stream(data, params=ByteSamplerParameters(header_skip=0))


def test_decode_image_checks_size_before_decoding(monkeypatch) -> None:
    import image_processor

    def _no_decode(image):
        raise AssertionError("pixel data should not be decoded")

    monkeypatch.setattr(image_processor, "image_to_decoded", _no_decode)
    with pytest.raises(ImageTooLarge):
        decode_image(make_png((20, 20)), max_pixels=100)


def test_decode_image_within_limit() -> None:
    decoded = decode_image(make_png((10, 10)), max_pixels=100)
    assert (decoded.width, decoded.height) == (10, 10)
