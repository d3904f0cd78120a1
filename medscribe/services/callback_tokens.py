import time
from typing import Optional
from urllib.parse import urlencode

import jwt

from ..errors import CallbackAuthorizationError

CALLBACK_SCOPE = "transcription-callback"
ALGORITHM = "HS256"


class CallbackTokenSigner:
    """Tokens assinados que autorizam o workflow a atualizar um único job"""

    def __init__(self, secret: str, ttl_seconds: int = 86400):
        if not secret:
            raise ValueError("CALLBACK_SECRET não está definida")
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def sign(self, job_id: str, now: Optional[float] = None) -> str:
        issued_at = int(now if now is not None else time.time())
        claims = {
            "sub": job_id,
            "scope": CALLBACK_SCOPE,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(claims, self.secret, algorithm=ALGORITHM)

    def verify(self, token: Optional[str], job_id: str) -> dict:
        if not token:
            raise CallbackAuthorizationError("Token de callback ausente", job_id=job_id)

        try:
            claims = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise CallbackAuthorizationError("Token de callback expirado", job_id=job_id)
        except jwt.InvalidTokenError:
            raise CallbackAuthorizationError("Token de callback inválido", job_id=job_id)

        if claims.get("scope") != CALLBACK_SCOPE or claims.get("sub") != job_id:
            raise CallbackAuthorizationError("Token de callback não corresponde ao job", job_id=job_id)
        return claims

    def callback_url(self, base_url: str, job_id: str) -> str:
        query = urlencode({"token": self.sign(job_id)})
        return f"{base_url.rstrip('/')}/webhooks/transcription/{job_id}?{query}"
