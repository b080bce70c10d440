"""
Anthropic 兼容接口

提供 Anthropic 风格的 Messages 端点。
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from app.api.deps import TranslatorDep, require_bridge_key
from app.api.proxy.common import handle_conversation
from app.common.protocol.requests import parse_messages_request
from app.serializers.anthropic import AnthropicSerializer

router = APIRouter(tags=["Anthropic"], dependencies=[Depends(require_bridge_key)])


@router.post("/v1/messages")
async def messages(
    request: Request,
    translator: TranslatorDep,
) -> Response:
    """
    Anthropic Messages 接口

    将请求转换为提示词交给后端会话执行，并按 Messages 协议返回结果。
    支持普通请求和流式请求。
    """
    return await handle_conversation(request, translator, parse_messages_request, AnthropicSerializer)
