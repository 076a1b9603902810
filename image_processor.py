# image_processor.py

import io
from dataclasses import dataclass
from typing import Union

from PIL import Image, UnidentifiedImageError

from pipeline_errors import DecodeUnavailable, EmptyInput, ImageTooLarge, InvalidBufferLength

LED_WIDTH = 16
LED_HEIGHT = 16
LED_BUFFER_SIZE = LED_WIDTH * LED_HEIGHT * 3

# Byte-stream fallback: accepted intensity band and padding value.
SAMPLE_MIN = 20
SAMPLE_MAX = 235
NEUTRAL_FILL = 100


@dataclass(frozen=True)
class DecodedImage:
    width: int
    height: int
    data: bytes
    channels: int = 3


@dataclass(frozen=True)
class RawByteStream:
    data: bytes


PipelineInput = Union[DecodedImage, RawByteStream]


@dataclass(frozen=True)
class ByteSamplerParameters:
    header_skip: int = 100
    headroom: int = 2


def image_to_decoded(image: Image.Image) -> DecodedImage:
    rgb = image.convert("RGB")
    width, height = rgb.size
    return DecodedImage(width=width, height=height, data=rgb.tobytes())


def decode_image(data: bytes, max_pixels: int | None = None) -> DecodedImage:
    """
    用Pillow解码图片字节流（JPEG/PNG/WebP...）。

    :param max_pixels: 像素数上限，在解码像素数据之前按图片头部尺寸检查。
    :raises DecodeUnavailable: 无法解码时抛出，调用方应改用字节流采样。
    :raises ImageTooLarge: 图片尺寸超过 max_pixels。
    """
    if not data:
        raise DecodeUnavailable("no image data")
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            if max_pixels is not None and width * height > max_pixels:
                raise ImageTooLarge(f"{width}x{height} exceeds {max_pixels} pixels")
            return image_to_decoded(image)
    except Image.DecompressionBombError as e:
        raise ImageTooLarge(str(e)) from e
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeUnavailable(f"cannot decode image: {e}") from e


def resample_nearest(
    image: DecodedImage, width: int = LED_WIDTH, height: int = LED_HEIGHT
) -> bytes:
    """Nearest-neighbour resample that stretches the source over the whole grid.

    No blending is done, so hard pixel-art edges survive the downsample.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid target size {width}x{height}")
    if image.width <= 0 or image.height <= 0:
        raise ValueError(f"invalid source size {image.width}x{image.height}")
    if image.channels != 3:
        raise ValueError(f"expected 3 channels, got {image.channels}")

    expected = image.width * image.height * 3
    if len(image.data) < expected:
        raise InvalidBufferLength(len(image.data), expected)

    src = image.data
    out = bytearray(width * height * 3)
    for ty in range(height):
        sy = ty * image.height // height
        row_start = sy * image.width
        for tx in range(width):
            sx = tx * image.width // width
            src_idx = (row_start + sx) * 3
            idx = (ty * width + tx) * 3
            out[idx:idx + 3] = src[src_idx:src_idx + 3]
    return bytes(out)


def sample_byte_stream(
    data: bytes,
    target: int = LED_BUFFER_SIZE,
    params: ByteSamplerParameters | None = None,
) -> bytes:
    """Best-effort buffer built straight from encoded image bytes.

    Used only when no codec can decode the input. The header skip and the
    stride are heuristics: the result approximates brightness at best and can
    be unrelated noise for formats whose bytes don't track pixel position.
    """
    if not data:
        raise EmptyInput("byte stream is empty")
    params = params or ByteSamplerParameters()

    step = len(data) // (target * max(1, params.headroom))
    if step == 0:
        step = 1

    samples = bytearray()
    start = max(0, params.header_skip)
    for i in range(start, len(data), step):
        value = data[i]
        if SAMPLE_MIN <= value <= SAMPLE_MAX:
            samples.append(value)
            if len(samples) >= target:
                break

    accepted = len(samples)
    if accepted == 0:
        return bytes([NEUTRAL_FILL]) * target

    # Cycle through what we have until the buffer is full.
    while len(samples) < target:
        samples.append(samples[len(samples) % accepted])
    return bytes(samples)


def buffer_to_rows(buffer: bytes, width: int = LED_WIDTH, height: int = LED_HEIGHT) -> list[list[list[int]]]:
    expected = width * height * 3
    if len(buffer) != expected:
        raise InvalidBufferLength(len(buffer), expected)

    rows = []
    for y in range(height):
        row = []
        for x in range(width):
            idx = (y * width + x) * 3
            row.append([buffer[idx], buffer[idx + 1], buffer[idx + 2]])
        rows.append(row)
    return rows
