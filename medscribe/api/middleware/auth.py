from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from typing import Optional

security = HTTPBearer(auto_error=False)

ANONYMOUS = {"sub": None, "user": "anonymous"}


async def verify_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """Verifica token JWT; sem JWT_SECRET configurado o acesso é anónimo"""
    jwt_secret = request.app.state.settings.jwt_secret
    if not jwt_secret:
        return dict(ANONYMOUS)

    if not credentials:
        raise HTTPException(status_code=401, detail="Autenticação necessária")

    try:
        payload = jwt.decode(credentials.credentials, jwt_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expirado")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Token inválido")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Token sem utilizador")
    return payload


def can_access(user: dict, owner_id: Optional[str]) -> bool:
    """Utilizador anónimo vê tudo; autenticado só vê os seus jobs"""
    user_id = user.get("sub")
    return user_id is None or owner_id == user_id
