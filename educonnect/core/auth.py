from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .config import settings
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()

ADMIN = "admin"
TEACHER = "teacher"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})

    # JWT requires 'sub' to be a string
    if 'sub' in to_encode:
        to_encode['sub'] = str(to_encode['sub'])

    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    logger.info(f"Created token for user {data.get('sub')} with type {data.get('type')}")
    return encoded_jwt


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id_str = payload.get("sub")
        user_type = payload.get("type")

        if user_id_str is None or user_type is None:
            logger.error("Token missing required fields")
            raise HTTPException(status_code=401, detail="Invalid token")

        try:
            user_id = int(user_id_str)
        except ValueError:
            logger.error(f"Cannot convert user_id '{user_id_str}' to int")
            raise HTTPException(status_code=401, detail="Invalid token")

        return {"user_id": user_id, "user_type": user_type}

    except JWTError as e:
        logger.error(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def _require_role(token_data: dict, role: str) -> int:
    if token_data["user_type"] != role:
        logger.error(f"Access denied - user_type is '{token_data['user_type']}', expected '{role}'")
        raise HTTPException(status_code=403, detail=f"{role.capitalize()} access required")
    return token_data["user_id"]


def require_admin(token_data: dict = Depends(verify_token)) -> int:
    return _require_role(token_data, ADMIN)


def require_teacher(token_data: dict = Depends(verify_token)) -> int:
    return _require_role(token_data, TEACHER)
