import logging
import os

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from journalflow.lib.api_client import supabase

logger = logging.getLogger("journalflow.auth")

# === Auth 核心配置 ===
# 中文注释:
# 1. 密钥来源于 Supabase Project Settings 中的 JWT Secret。
# 2. 使用 HTTPBearer 作为验证头；身份验证本身属于外部协作方，这里只做边界校验。
SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET", "")
ALGORITHM = "HS256"
AUDIENCE = "authenticated"

security = HTTPBearer()


def decode_token(token: str, secret: str | None = None) -> dict:
    """
    校验 HS256 Token 并返回 {id, email}。
    """
    key = secret if secret is not None else SUPABASE_JWT_SECRET
    try:
        payload = jwt.decode(token, key, algorithms=[ALGORITHM], audience=AUDIENCE)
    except JWTError as e:
        logger.warning("JWT 验证失败: %s", e)
        raise HTTPException(status_code=401, detail="Token is invalid or expired")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return {"id": str(user_id), "email": payload.get("email")}


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    解码并验证 Supabase JWT Token
    """
    token = credentials.credentials
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as e:
        logger.warning("JWT header 无法解析: %s", e)
        raise HTTPException(status_code=401, detail="Token is invalid or expired")

    if header.get("alg") == ALGORITHM and SUPABASE_JWT_SECRET:
        return decode_token(token)

    # fallback: 非 HS256（JWT Signing Keys）时通过 Supabase Auth API 校验
    try:
        response = supabase.auth.get_user(token)
        user = response.user if response else None
    except Exception as e:
        # 中文注释: Supabase 配置缺失/网络异常统一视为鉴权失败，不泄露内部错误
        logger.warning("JWT fallback 校验失败: %s", e)
        raise HTTPException(status_code=401, detail="Token is invalid or expired")

    if not user:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return {"id": str(user.id), "email": user.email}
