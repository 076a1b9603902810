from dataclasses import dataclass
from typing import Any

from image_processor import LED_HEIGHT, LED_WIDTH
from pipeline_errors import InvalidBufferLength


@dataclass(frozen=True)
class PipelineStats:
    min_brightness: int
    max_brightness: int
    avg_brightness: float
    avg_red: float
    avg_green: float
    avg_blue: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "brightnessRange": {
                "min": self.min_brightness,
                "max": self.max_brightness,
                "avg": self.avg_brightness,
            },
            "colorStats": {
                "avgRed": self.avg_red,
                "avgGreen": self.avg_green,
                "avgBlue": self.avg_blue,
            },
        }


def compute_pipeline_stats(
    buffer: bytes, *, width: int = LED_WIDTH, height: int = LED_HEIGHT
) -> PipelineStats:
    """Summary numbers for a finished buffer (debugging / API responses)."""
    expected = width * height * 3
    if len(buffer) != expected:
        raise InvalidBufferLength(len(buffer), expected)

    pixel_count = width * height
    return PipelineStats(
        min_brightness=min(buffer),
        max_brightness=max(buffer),
        avg_brightness=round(sum(buffer) / expected, 2),
        avg_red=round(sum(buffer[0::3]) / pixel_count, 2),
        avg_green=round(sum(buffer[1::3]) / pixel_count, 2),
        avg_blue=round(sum(buffer[2::3]) / pixel_count, 2),
    )
