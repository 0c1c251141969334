"""
认证模块
校验身份提供方签发的会话 JWT；sub 声明作为操作人写入 request.state.actor
"""
import logging
from datetime import datetime, timedelta, UTC
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from backoffice.config import settings
from backoffice_core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_HOURS = 24

security = HTTPBearer()


def create_access_token(user_id: str, expires_in: Optional[timedelta] = None) -> str:
    """签发会话 token（本地开发与测试使用）"""
    expire = datetime.now(UTC) + (expires_in or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode = {"sub": user_id, "exp": expire}
    return jwt.encode(to_encode, settings.AUTH_JWT_KEY, algorithm=settings.AUTH_JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        return jwt.decode(token, settings.AUTH_JWT_KEY, algorithms=[settings.AUTH_JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise UnauthorizedError("Unauthorized", ["Invalid or expired token"])


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """获取当前登录用户 ID"""
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Unauthorized", ["Token has no subject"])
    request.state.actor = user_id
    return user_id
