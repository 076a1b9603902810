import html
from datetime import datetime, timezone
from typing import Any, NoReturn, Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel, Field

import api_core
import matrix_service
from config_loader import get_config, get_int, get_logger
from pipeline_errors import (
    EmptyInput,
    ImageTooLarge,
    InvalidBufferLength,
    MatrixPipelineError,
    UpstreamAcquisitionFailure,
)

logger = get_logger("led_matrix")

OPENAPI_TAGS = [
    {
        "name": "Matrix",
        "description": "生成或上传图片，转换为 16x16 LED 矩阵像素（含 LED 色彩增强）。",
    },
    {
        "name": "Hardware",
        "description": "硬件读取接口：最近一次矩阵结果。",
    },
]

app = FastAPI(
    title="LED Matrix Image Resizer",
    description=(
        "把图片（或 AI 生成的图片）转换为 16x16 RGB 像素缓冲，供 ESP32 LED 矩阵显示。\n\n"
        "1) POST /api/resize-image 传 prompt 或 imageData(base64)；\n"
        "2) POST /api/matrix/downsample 上传图片文件；\n"
        "3) GET /api/data/matrix/* 读取最近一次结果；/ui 预览。"
    ),
    version="1.0.0",
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.result_store = matrix_service.MatrixResultStore(matrix_service.DATA_FILE)


# --- Models ---
class ResizeRequest(BaseModel):
    prompt: Optional[str] = Field(default=None, description="AI 生图提示词")
    imageData: Optional[str] = Field(default=None, description="base64 编码的图片")


class BrightnessRange(BaseModel):
    min: int
    max: int
    avg: float


class ColorStats(BaseModel):
    avgRed: float
    avgGreen: float
    avgBlue: float


class PipelineStatsModel(BaseModel):
    brightnessRange: BrightnessRange
    colorStats: ColorStats


class MatrixPixelsResponse(BaseModel):
    pixels: list[int] = Field(..., description="R,G,B,R,G,B,... 按行展开，共 width*height*3 个值")
    width: int = Field(..., examples=[16])
    height: int = Field(..., examples=[16])
    stats: PipelineStatsModel
    source: str = Field(..., description="decoded | byte_stream")
    originalSize: int = Field(..., description="输入图片字节数")
    prompt: Optional[str] = None
    message: Optional[str] = None
    timings: Optional[dict[str, float]] = Field(default=None, description="耗时（秒），仅提示词生图时返回")


def _store(request: Request) -> matrix_service.MatrixResultStore:
    return request.app.state.result_store


def _raise_http(e: MatrixPipelineError) -> NoReturn:
    if isinstance(e, EmptyInput):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ImageTooLarge):
        raise HTTPException(status_code=413, detail=str(e))
    if isinstance(e, UpstreamAcquisitionFailure):
        raise HTTPException(status_code=502, detail="Image generation failed")
    if isinstance(e, InvalidBufferLength):
        logger.error(f"Pipeline contract violation: {e}")
        raise HTTPException(status_code=500, detail="Image processing failed")
    raise HTTPException(status_code=500, detail=str(e))


@app.on_event("startup")
def _load_latest() -> None:
    store = app.state.result_store
    if store.load() is not None:
        logger.info("Loaded previous matrix result")


@app.get("/health", include_in_schema=False)
def health() -> dict:
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/", include_in_schema=False, response_class=HTMLResponse)
def root() -> str:
    return """
    <html>
      <body>
        <h1>LED Matrix Image Resizer</h1>
        <p>Converts images to 16x16 RGB pixels for ESP32 LED matrix frames.</p>
        <p><strong>API Endpoint:</strong> <code>/api/resize-image</code></p>
        <p>Preview: <a href="/ui">/ui</a> &middot; Docs: <a href="/docs">/docs</a></p>
      </body>
    </html>
    """


@app.post(
    "/api/resize-image",
    response_model=MatrixPixelsResponse,
    tags=["Matrix"],
    summary="提示词生图或 base64 图片 -> 16x16 像素",
)
def resize_image(body: ResizeRequest, request: Request) -> dict[str, Any]:
    prompt = (body.prompt or "").strip()
    if not prompt and not body.imageData:
        raise HTTPException(status_code=400, detail="No prompt or imageData provided")
    if prompt and body.imageData:
        raise HTTPException(status_code=400, detail="Provide either prompt or imageData, not both")

    try:
        if prompt:
            logger.info(f"Processing prompt: {prompt}")
            result, payload = api_core.resize_from_prompt(prompt)
        else:
            data = api_core.decode_base64_image(body.imageData or "")
            result, payload = api_core.resize_from_bytes(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MatrixPipelineError as e:
        _raise_http(e)

    _store(request).update(result)
    return payload


@app.post(
    "/api/matrix/downsample",
    response_model=MatrixPixelsResponse,
    tags=["Matrix"],
    summary="上传图片并下采样",
)
async def matrix_downsample(request: Request, file: UploadFile = File(...)) -> dict[str, Any]:
    allowed_types = {"image/png", "image/jpeg", "image/jpg", "image/webp", "application/octet-stream"}
    if file.content_type not in allowed_types:
        raise HTTPException(status_code=400, detail="unsupported image type")

    content = await file.read()
    max_upload_mb = get_int("MAX_UPLOAD_MB", 10)
    if len(content) > max_upload_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail="upload too large")

    try:
        result, payload = api_core.resize_from_bytes(content)
    except MatrixPipelineError as e:
        _raise_http(e)

    _store(request).update(result)
    return payload


def _latest_or_404(request: Request) -> matrix_service.MatrixResult:
    latest = _store(request).latest
    if latest is None:
        raise HTTPException(status_code=404, detail="no matrix data yet")
    return latest


@app.get(
    "/api/data/matrix/json",
    response_model=MatrixPixelsResponse,
    tags=["Hardware"],
    summary="获取最近一次矩阵像素",
)
def get_matrix_json(request: Request) -> dict[str, Any]:
    return _latest_or_404(request).to_payload()


@app.get(
    "/api/data/matrix/raw",
    tags=["Hardware"],
    summary="获取最近一次矩阵原始字节",
    description="768 字节 RGB 原始流（R,G,B,...）。",
)
def get_matrix_raw(request: Request) -> Response:
    return Response(content=_latest_or_404(request).pixels, media_type="application/octet-stream")


@app.get("/ui", include_in_schema=False, response_class=HTMLResponse)
def preview(request: Request) -> str:
    latest = _store(request).latest
    if latest is None:
        return "<html><body><p>No matrix data yet.</p></body></html>"

    cells = []
    for row in latest.to_rows():
        for r, g, b in row:
            cells.append(f'<div style="background:rgb({r},{g},{b})"></div>')
    caption = html.escape(latest.prompt or latest.source)
    return f"""
    <html>
      <body style="background:#111;color:#eee;font-family:sans-serif">
        <p>{caption}</p>
        <div style="display:grid;grid-template-columns:repeat({latest.width},20px);gap:2px">
          {''.join(cells)}
        </div>
        <pre>{html.escape(str(latest.stats.to_dict()))}</pre>
      </body>
    </html>
    """


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=get_config("HOST", "0.0.0.0"), port=get_int("PORT", 8000))
