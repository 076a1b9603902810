"""
LED color enhancement.

Small LED matrices wash out mid tones and lose dark pixels entirely, so every
pixel goes through four stages in a fixed order:

1. gamma correction (per channel)
2. contrast stretch around mid-gray
3. saturation boost for pixels that are not near-gray
4. minimum-brightness floor for very dark pixels

Each stage rounds and clamps its result to a byte before the next one runs.
"""

from dataclasses import dataclass

from config_loader import get_float, get_int
from image_processor import LED_HEIGHT, LED_WIDTH
from pipeline_errors import InvalidBufferLength

SATURATION_THRESHOLD = 0.1


@dataclass(frozen=True)
class EnhancementParameters:
    gamma: float = 2.2
    contrast_factor: float = 1.3
    saturation_boost: float = 1.3
    min_brightness: int = 8

    @classmethod
    def from_config(cls) -> "EnhancementParameters":
        defaults = cls()
        return cls(
            gamma=get_float("LED_GAMMA", defaults.gamma),
            contrast_factor=get_float("LED_CONTRAST_FACTOR", defaults.contrast_factor),
            saturation_boost=get_float("LED_SATURATION_BOOST", defaults.saturation_boost),
            min_brightness=get_int("LED_MIN_BRIGHTNESS", defaults.min_brightness),
        )


Triple = tuple[int, int, int]


def _to_byte(value: float) -> int:
    return max(0, min(255, int(round(value))))


def _map(rgb: Triple, fn) -> Triple:
    r, g, b = rgb
    return _to_byte(fn(r)), _to_byte(fn(g)), _to_byte(fn(b))


def apply_gamma(rgb: Triple, gamma: float) -> Triple:
    inv = 1.0 / gamma
    return _map(rgb, lambda c: 255 * (c / 255) ** inv)


def apply_contrast(rgb: Triple, factor: float) -> Triple:
    """Stretch each channel away from mid-gray (128).

    Gray pixels are not fixed points: with the default factor a gamma-corrected
    gray of 186 becomes 128 + 1.3 * (186 - 128) = 203.4 -> 203, so mid-gray
    input ends at (203, 203, 203) rather than staying at 186.
    """
    return _map(rgb, lambda c: 128 + factor * (c - 128))


def apply_saturation(rgb: Triple, boost: float) -> Triple:
    hi = max(rgb)
    lo = min(rgb)
    saturation = (hi - lo) / hi if hi > 0 else 0.0
    # Near-gray pixels are left alone so sensor noise isn't amplified.
    if saturation <= SATURATION_THRESHOLD:
        return rgb
    avg = sum(rgb) / 3
    return _map(rgb, lambda c: avg + boost * (c - avg))


def apply_brightness_floor(rgb: Triple, min_brightness: int) -> Triple:
    if not all(c < min_brightness for c in rgb):
        return rgb
    # A pure black pixel stays black: scaling zero is still zero.
    scale = min_brightness / max(*rgb, 1)
    return _map(rgb, lambda c: c * scale)


def enhance_pixel(rgb: Triple, params: EnhancementParameters) -> Triple:
    rgb = apply_gamma(rgb, params.gamma)
    rgb = apply_contrast(rgb, params.contrast_factor)
    rgb = apply_saturation(rgb, params.saturation_boost)
    return apply_brightness_floor(rgb, params.min_brightness)


def enhance_for_led(
    buffer: bytes,
    params: EnhancementParameters | None = None,
    *,
    width: int = LED_WIDTH,
    height: int = LED_HEIGHT,
) -> bytes:
    """Run the enhancement chain over a whole RGB buffer and return a new one."""
    expected = width * height * 3
    if len(buffer) != expected:
        raise InvalidBufferLength(len(buffer), expected)
    params = params or EnhancementParameters()

    out = bytearray(expected)
    for idx in range(0, expected, 3):
        pixel = (buffer[idx], buffer[idx + 1], buffer[idx + 2])
        out[idx:idx + 3] = bytes(enhance_pixel(pixel, params))
    return bytes(out)
