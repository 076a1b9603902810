import json
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import requests

from config_loader import get_config, get_float, get_int, get_logger
from image_processor import (
    LED_BUFFER_SIZE,
    LED_HEIGHT,
    LED_WIDTH,
    ByteSamplerParameters,
    DecodedImage,
    PipelineInput,
    RawByteStream,
    buffer_to_rows,
    decode_image,
    resample_nearest,
    sample_byte_stream,
)
from led_enhancer import EnhancementParameters, enhance_for_led
from pipeline_errors import (
    DecodeUnavailable,
    InvalidBufferLength,
    UpstreamAcquisitionFailure,
)
from pipeline_stats import PipelineStats, compute_pipeline_stats

logger = get_logger("led_matrix")

# --- Config ---
STABILITY_API_URL = get_config(
    "STABILITY_API_URL", "https://api.stability.ai/v2beta/stable-image/generate/core"
)
STABILITY_TIMEOUT_S = get_float("STABILITY_TIMEOUT_S", 60.0)
MAX_IMAGE_PIXELS = get_int("MAX_IMAGE_PIXELS", 10000000)
DATA_FILE = get_config("MATRIX_DATA_FILE", "latest_led_data.json")

SOURCE_DECODED = "decoded"
SOURCE_BYTE_STREAM = "byte_stream"


def sampler_params_from_config() -> ByteSamplerParameters:
    defaults = ByteSamplerParameters()
    return ByteSamplerParameters(
        header_skip=get_int("BYTE_SAMPLER_HEADER_SKIP", defaults.header_skip),
        headroom=get_int("BYTE_SAMPLER_HEADROOM", defaults.headroom),
    )


@dataclass
class MatrixResult:
    pixels: bytes
    stats: PipelineStats
    source: str
    original_size: int
    width: int = LED_WIDTH
    height: int = LED_HEIGHT
    prompt: str | None = None
    created_at: float = field(default_factory=time.time)

    def to_rows(self) -> list[list[list[int]]]:
        return buffer_to_rows(self.pixels, self.width, self.height)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "pixels": list(self.pixels),
            "width": self.width,
            "height": self.height,
            "stats": self.stats.to_dict(),
            "source": self.source,
            "originalSize": self.original_size,
        }
        if self.prompt is not None:
            payload["prompt"] = self.prompt
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "MatrixResult":
        pixels = bytes(payload["pixels"])
        width = int(payload.get("width", LED_WIDTH))
        height = int(payload.get("height", LED_HEIGHT))
        if len(pixels) != width * height * 3:
            raise InvalidBufferLength(len(pixels), width * height * 3)
        return cls(
            pixels=pixels,
            stats=compute_pipeline_stats(pixels, width=width, height=height),
            source=payload.get("source", SOURCE_DECODED),
            original_size=int(payload.get("originalSize", 0)),
            width=width,
            height=height,
            prompt=payload.get("prompt"),
        )


class MatrixResultStore:
    """Holds the most recent result for the display/preview endpoints.

    Owned by whoever serves those endpoints and passed around explicitly; with
    a path set, every update is also written to disk so a restart can reload it.
    """

    def __init__(self, path: str | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._latest: MatrixResult | None = None

    @property
    def latest(self) -> MatrixResult | None:
        with self._lock:
            return self._latest

    def update(self, result: MatrixResult) -> None:
        with self._lock:
            self._latest = result
            if self._path:
                self._save(result)

    def _save(self, result: MatrixResult) -> None:
        try:
            with open(self._path, "w") as f:
                json.dump(result.to_payload(), f)
        except OSError as e:
            logger.warning(f"Failed to save matrix data: {e}")

    def load(self) -> MatrixResult | None:
        if not self._path or not os.path.exists(self._path):
            return None
        try:
            with open(self._path, "r") as f:
                result = MatrixResult.from_payload(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, InvalidBufferLength) as e:
            logger.warning(f"Ignoring unreadable matrix data file {self._path}: {e}")
            return None
        with self._lock:
            self._latest = result
        return result


def run_pipeline(
    source: PipelineInput,
    params: EnhancementParameters | None = None,
    sampler_params: ByteSamplerParameters | None = None,
    *,
    original_size: int | None = None,
) -> MatrixResult:
    """Resample (or byte-sample) the input, enhance it for LEDs, attach stats."""
    if isinstance(source, DecodedImage):
        buffer = resample_nearest(source, LED_WIDTH, LED_HEIGHT)
        kind = SOURCE_DECODED
    elif isinstance(source, RawByteStream):
        buffer = sample_byte_stream(source.data, LED_BUFFER_SIZE, sampler_params)
        kind = SOURCE_BYTE_STREAM
    else:
        raise TypeError(f"unsupported pipeline input: {type(source).__name__}")

    enhanced = enhance_for_led(buffer, params or EnhancementParameters.from_config())
    if original_size is None:
        original_size = len(source.data)
    return MatrixResult(
        pixels=enhanced,
        stats=compute_pipeline_stats(enhanced),
        source=kind,
        original_size=original_size,
    )


def process_image_bytes(
    data: bytes,
    params: EnhancementParameters | None = None,
    sampler_params: ByteSamplerParameters | None = None,
) -> MatrixResult:
    """Decode with Pillow when possible, otherwise fall back to byte sampling."""
    try:
        source: PipelineInput = decode_image(data, max_pixels=MAX_IMAGE_PIXELS)
    except DecodeUnavailable as e:
        logger.warning(f"Decode unavailable, using byte-stream sampling: {e}")
        source = RawByteStream(data)

    result = run_pipeline(
        source,
        params,
        sampler_params or sampler_params_from_config(),
        original_size=len(data),
    )
    logger.info(f"Processed {len(data)} bytes via {result.source} -> {len(result.pixels)} values")
    return result


# --- Image acquisition ---
def generate_image_bytes(prompt: str) -> bytes:
    """Ask Stability AI for a small square JPEG and return its bytes."""
    api_key = get_config("STABILITY_API_KEY", "")
    if not api_key:
        raise UpstreamAcquisitionFailure("STABILITY_API_KEY is not configured")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Accept": "image/*",
    }
    form = {
        "prompt": (None, prompt),
        "aspect_ratio": (None, "1:1"),
        "output_format": (None, "jpeg"),
    }

    t0 = time.perf_counter()
    try:
        resp = requests.post(STABILITY_API_URL, headers=headers, files=form, timeout=STABILITY_TIMEOUT_S)
    except requests.RequestException as e:
        raise UpstreamAcquisitionFailure(f"Stability AI request failed: {e}") from e

    if not resp.ok:
        logger.error(f"Stability AI error {resp.status_code}: {resp.text[:200]}")
        raise UpstreamAcquisitionFailure(f"Stability AI returned {resp.status_code}")
    if not resp.content:
        raise UpstreamAcquisitionFailure("Stability AI returned an empty image")

    logger.info(f"Stability AI took {time.perf_counter() - t0:.3f}s, {len(resp.content)} bytes")
    return resp.content


def generate_matrix_data(
    prompt: str,
    params: EnhancementParameters | None = None,
) -> MatrixResult:
    """
    Main entry point for prompt-driven matrix generation.
    """
    image_bytes = generate_image_bytes(prompt)
    result = process_image_bytes(image_bytes, params)
    result.prompt = prompt
    return result
