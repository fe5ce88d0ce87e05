import os
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from logging_config import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_user_id(token: str) -> str:
    # the access token's subject is the user id, trusted as issued
    try:
        payload = jwt.decode(token, os.getenv("JWT_SECRET_ACCESS", ""), algorithms=["HS256"],
                             options={"verify_exp": True})
    except jwt.PyJWTError as e:
        logger.info("Rejected access token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired access token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Access token has no subject")
    return str(user_id)


def get_current_user_id(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> str:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access token required")
    return decode_user_id(credentials.credentials)
