"""
Core API Logic - 底层API逻辑
提供可被HTTP和MCP同时调用的核心功能函数
"""

import base64
import binascii
import time
from typing import Any, Dict

import matrix_service
from config_loader import get_logger
from pipeline_errors import EmptyInput

logger = get_logger("led_matrix")


def decode_base64_image(image_data: str) -> bytes:
    # Accept data URLs as well as bare base64.
    if image_data.startswith("data:") and "," in image_data:
        image_data = image_data.split(",", 1)[1]
    # MIME-style encoders wrap lines; whitespace is not data.
    image_data = "".join(image_data.split())
    try:
        data = base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"imageData is not valid base64: {e}") from e
    if not data:
        raise EmptyInput("imageData decoded to zero bytes")
    return data


def resize_from_prompt(prompt: str) -> tuple[matrix_service.MatrixResult, Dict[str, Any]]:
    """Generate an image for the prompt and run it through the LED pipeline."""
    t0 = time.perf_counter()
    result = matrix_service.generate_matrix_data(prompt)
    elapsed = time.perf_counter() - t0
    logger.info(f"Prompt pipeline took {elapsed:.3f}s")

    payload = result.to_payload()
    payload["message"] = "AI image processed successfully"
    payload["timings"] = {"total": round(elapsed, 3)}
    return result, payload


def resize_from_bytes(data: bytes) -> tuple[matrix_service.MatrixResult, Dict[str, Any]]:
    """Run already-acquired image bytes through the LED pipeline."""
    if not data:
        raise EmptyInput("no image data provided")
    result = matrix_service.process_image_bytes(data)

    payload = result.to_payload()
    if result.source == matrix_service.SOURCE_BYTE_STREAM:
        payload["message"] = "Image could not be decoded; approximated from raw bytes"
    else:
        payload["message"] = "Image processed successfully"
    return result, payload
