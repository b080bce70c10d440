"""
API 依赖注入模块

提供 FastAPI 路由所需的依赖项。
"""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from app.common.errors import AuthenticationError
from app.config import Settings, get_settings
from app.services.session_bridge import SessionBridge
from app.services.translator import ResponseTranslator


# ============ Service 依赖 ============

def get_bridge(request: Request) -> SessionBridge:
    """获取应用级 SessionBridge 单例（在 lifespan 中创建）"""
    return request.app.state.bridge


def get_translator(
    bridge: Annotated[SessionBridge, Depends(get_bridge)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ResponseTranslator:
    """获取响应转换器"""
    return ResponseTranslator(bridge, settings)


# ============ 鉴权依赖 ============

def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return authorization.strip() or None


async def require_bridge_key(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: str = Header(None, description="Bearer token"),
    x_api_key: str = Header(None, description="Anthropic style API key", alias="x-api-key"),
) -> None:
    """
    校验调用方密钥

    未设置 BRIDGE_API_KEY 时直接放行；否则要求 x-api-key 或 Bearer token 与之一致。
    优先使用 x-api-key。

    Raises:
        AuthenticationError: 密钥缺失或不匹配
    """
    expected = settings.BRIDGE_API_KEY
    if not expected:
        return

    token = x_api_key or _extract_bearer_token(authorization)
    if not token:
        raise AuthenticationError("Missing API key", code="missing_api_key")
    if not secrets.compare_digest(token.encode(), expected.encode()):
        raise AuthenticationError("Invalid API key")


# 依赖类型别名
BridgeDep = Annotated[SessionBridge, Depends(get_bridge)]
TranslatorDep = Annotated[ResponseTranslator, Depends(get_translator)]
