from typing import Literal, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from tempmail.core.settings import get_settings

Role = Literal["admin", "user"]


class User:
    def __init__(self, id: str, role: Role, email: Optional[str] = None):
        self.id = id
        self.role = role
        self.email = email


def _parse_token(token: str) -> Optional[User]:
    settings = get_settings()
    secret = settings.jwt_secret or "your-secret-key"
    algorithm = settings.jwt_algorithm or "HS256"
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None

    subject = payload.get("sub")
    role = payload.get("role", "user")
    if subject is None or role not in ("admin", "user"):
        return None
    email = payload.get("email")
    return User(id=str(subject), role=role, email=email if isinstance(email, str) else None)


def _bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization", "")
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def get_optional_user(request: Request) -> Optional[User]:
    token = _bearer_token(request)
    if not token:
        return None
    return _parse_token(token)


def get_current_user(request: Request) -> User:
    user = get_optional_user(request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")
    return user


def require_role(need: Role):
    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role != need:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return user

    return _dep
