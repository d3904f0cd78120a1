import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigError

MB = 1024 * 1024


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigError(f"{name} não está definida")
    return value


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} deve ser um inteiro, recebido: {raw!r}")


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} deve ser numérico, recebido: {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Configuração do serviço, resolvida uma única vez no arranque"""

    workflow_url: str
    app_url: str
    callback_secret: str
    callback_base_url: Optional[str] = None

    database_url: str = "sqlite:///./transcriptions.db"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    jwt_secret: Optional[str] = None

    max_upload_bytes: int = 100 * MB
    inline_audio_max_bytes: int = 2 * MB
    large_file_bytes: int = 5 * MB

    workflow_timeout_seconds: float = 45.0
    response_grace_seconds: float = 0.5
    shutdown_drain_seconds: float = 10.0

    status_poll_interval_seconds: float = 1.0
    status_max_attempts: int = 120

    callback_token_ttl_seconds: int = 86400

    storage_backend: str = "local"
    upload_dir: str = "./uploads"
    s3_bucket: Optional[str] = None
    s3_endpoint: Optional[str] = None
    s3_region: Optional[str] = None
    s3_public_endpoint: Optional[str] = None
    s3_sign_expire_seconds: int = 7 * 86400

    redis_url: Optional[str] = None
    cache_ttl_seconds: int = 86400

    def __post_init__(self):
        if self.storage_backend not in ("local", "s3"):
            raise ConfigError(f"STORAGE_BACKEND inválido: {self.storage_backend}")
        if self.storage_backend == "s3" and not self.s3_bucket:
            raise ConfigError("S3_BUCKET é obrigatório quando STORAGE_BACKEND=s3")
        if self.inline_audio_max_bytes > self.max_upload_bytes:
            raise ConfigError("INLINE_AUDIO_MAX_BYTES não pode exceder MAX_UPLOAD_BYTES")

    @property
    def callback_base(self) -> str:
        return (self.callback_base_url or self.app_url).rstrip("/")

    @property
    def public_base(self) -> str:
        return self.app_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        return cls(
            workflow_url=_required("WORKFLOW_URL"),
            app_url=_required("APP_URL"),
            callback_secret=_required("CALLBACK_SECRET"),
            callback_base_url=_optional("CALLBACK_BASE_URL"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./transcriptions.db"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
            jwt_secret=_optional("JWT_SECRET"),
            max_upload_bytes=_int("MAX_UPLOAD_BYTES", 100 * MB),
            inline_audio_max_bytes=_int("INLINE_AUDIO_MAX_BYTES", 2 * MB),
            large_file_bytes=_int("LARGE_FILE_BYTES", 5 * MB),
            workflow_timeout_seconds=_float("WORKFLOW_TIMEOUT_SECONDS", 45.0),
            response_grace_seconds=_float("RESPONSE_GRACE_SECONDS", 0.5),
            shutdown_drain_seconds=_float("SHUTDOWN_DRAIN_SECONDS", 10.0),
            status_poll_interval_seconds=_float("STATUS_POLL_INTERVAL_SECONDS", 1.0),
            status_max_attempts=_int("STATUS_MAX_ATTEMPTS", 120),
            callback_token_ttl_seconds=_int("CALLBACK_TOKEN_TTL_SECONDS", 86400),
            storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
            upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
            s3_bucket=_optional("S3_BUCKET"),
            s3_endpoint=_optional("S3_ENDPOINT"),
            s3_region=_optional("S3_REGION"),
            s3_public_endpoint=_optional("S3_PUBLIC_ENDPOINT"),
            s3_sign_expire_seconds=_int("S3_SIGN_EXPIRE_SECONDS", 7 * 86400),
            redis_url=_optional("REDIS_URL"),
            cache_ttl_seconds=_int("CACHE_TTL_SECONDS", 86400),
        )
