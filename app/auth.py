from app.config import settings

from fastapi.security import APIKeyHeader
from fastapi import HTTPException, Security, status


AUTH_KEY = settings.auth_key
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)):
    """
    Dependency function guarding administrative endpoints.

    Internal Working:
    1. FastAPI extracts the X-API-Key header value
    2. We compare it against the expected AUTH_KEY
    3. If invalid, raise HTTPException (stops request processing)

    Raises:
        HTTPException: 401 if key is missing, 403 if key is invalid
    """
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API Key is missing. Include it in the 'X-API-Key' header.",
        )

    if api_key != AUTH_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API Key. Access denied.",
        )

    return True


async def get_current_user_id(user_id: str = Security(user_id_header)) -> str:
    """
    Dependency returning the member identity for lending endpoints.

    Credential issuance lives in front of this service; by the time a
    request arrives here the gateway has put the member id in X-User-Id.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if user_id is None or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is not authenticated. Include the 'X-User-Id' header.",
        )
    return user_id.strip()
