from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from proximity_notifier.config import settings
import httpx

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

async def get_current_caller(token: str = Depends(oauth2_scheme)) -> dict:
    """Decode the bearer token and confirm it with the user management service."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception
    if payload.get("sub") is None:
        raise credentials_exception

    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
        try:
            response = await client.get(
                f"{settings.USER_MANAGEMENT_URL}/api/v1/auth/verify",
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise HTTPException(status_code=e.response.status_code, detail="Caller verification failed")
        except httpx.RequestError:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="User management service unavailable")
    return response.json()

def require_roles(*roles: str):
    async def dependency(caller: dict = Depends(get_current_caller)) -> dict:
        if caller.get("role") not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to perform this action")
        return caller
    return dependency

# Event-management service posts created events; admins may replay them.
get_internal_caller = require_roles("Admin", "Internal")
get_admin_caller = require_roles("Admin")
