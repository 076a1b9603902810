"""
MCP (Model Context Protocol) Server for the LED matrix resizer
支持通过MCP协议调用图片 -> 16x16 LED 像素转换
"""

import asyncio
import json
from typing import Any, List

import mcp.server.stdio
from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

# Core logic (shared by HTTP + MCP)
import api_core
from pipeline_errors import MatrixPipelineError

# Initialize MCP Server
app = Server("led-matrix-mcp")


@app.list_resources()
async def list_resources() -> List[Resource]:
    """No additional resources exposed via MCP."""
    return []


@app.read_resource()
async def read_resource(uri: str) -> str:
    raise ValueError(f"Unknown resource URI: {uri}")


@app.list_tools()
async def list_tools() -> List[Tool]:
    return [
        Tool(
            name="generate_led_pixels",
            description="根据提示词生成图片并转换为 16x16 LED 像素（768 个 RGB 值）",
            inputSchema={
                "type": "object",
                "properties": {
                    "prompt": {
                        "type": "string",
                        "description": "AI 生图提示词",
                    }
                },
                "required": ["prompt"],
            },
        ),
        Tool(
            name="downsample_image",
            description="把 base64 图片转换为 16x16 LED 像素",
            inputSchema={
                "type": "object",
                "properties": {
                    "image_base64": {
                        "type": "string",
                        "description": "base64 编码的图片",
                    }
                },
                "required": ["image_base64"],
            },
        ),
    ]


def run_tool(name: str, arguments: Any) -> dict:
    args = arguments or {}
    if name == "generate_led_pixels":
        prompt = str(args.get("prompt", "")).strip()
        if not prompt:
            return {"status": "error", "error": "prompt is required"}
        _, payload = api_core.resize_from_prompt(prompt)
    elif name == "downsample_image":
        data = api_core.decode_base64_image(str(args.get("image_base64", "")))
        _, payload = api_core.resize_from_bytes(data)
    else:
        return {"status": "error", "error": f"Unknown tool: {name}"}
    return {"status": "success", **payload}


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> List[TextContent]:
    try:
        result = await asyncio.to_thread(run_tool, name, arguments)
    except (MatrixPipelineError, ValueError) as e:
        result = {"status": "error", "error": str(e)}

    return [
        TextContent(
            type="text",
            text=json.dumps(result, ensure_ascii=False),
        )
    ]


async def main():
    """
    启动MCP服务器
    """
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await app.run(
            read_stream,
            write_stream,
            app.create_initialization_options()
        )


if __name__ == "__main__":
    asyncio.run(main())
