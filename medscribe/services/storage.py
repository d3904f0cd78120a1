import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import aiofiles

from ..config import Settings
from ..errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str


class StorageBackend:
    async def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> StoredObject:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """Guarda o áudio em disco e serve-o pelo mount /uploads"""

    def __init__(self, upload_dir: str, public_base_url: str):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.upload_dir / key).resolve()
        if self.upload_dir.resolve() not in path.parents:
            raise StorageError(f"Chave de storage inválida: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/uploads/{key}"

    async def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> StoredObject:
        file_path = self._path_for(key)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, 'wb') as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Falha ao salvar áudio no storage: {e}")

        return StoredObject(key=key, url=self.url_for(key))

    async def delete(self, key: str) -> bool:
        """Remove arquivo do storage"""
        try:
            file_path = self._path_for(key)
            if file_path.exists():
                os.remove(file_path)
                return True
            return False
        except (OSError, StorageError) as e:
            logger.warning(f"Erro ao remover {key} do storage: {e}")
            return False


class S3Storage(StorageBackend):
    """Storage compatível com S3; devolve URL assinada para o workflow baixar"""

    def __init__(self, bucket: str, endpoint: Optional[str] = None, region: Optional[str] = None,
                 public_endpoint: Optional[str] = None, sign_expire_seconds: int = 3600):
        import boto3
        from botocore.config import Config

        s3_kwargs = {}
        if endpoint:
            s3_kwargs["endpoint_url"] = endpoint
        if region:
            s3_kwargs["region_name"] = region

        # credenciais vêm da cadeia padrão do boto3 (AWS_ACCESS_KEY_ID, ...)
        self.client = boto3.session.Session().client(
            "s3",
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
            **s3_kwargs,
        )
        self.bucket = bucket
        self.public_endpoint = public_endpoint
        self.sign_expire_seconds = sign_expire_seconds

    def _signed_url(self, key: str) -> str:
        presigned = self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.sign_expire_seconds,
        )
        if not self.public_endpoint:
            return presigned

        pe = urlsplit(self.public_endpoint)
        pu = urlsplit(presigned)
        return urlunsplit((pe.scheme or pu.scheme, pe.netloc or pu.netloc, pu.path, pu.query, pu.fragment))

    def _put(self, key: str, data: bytes, content_type: Optional[str]) -> str:
        extra = {"ContentType": content_type} if content_type else {}
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        return self._signed_url(key)

    async def save(self, key: str, data: bytes, content_type: Optional[str] = None) -> StoredObject:
        loop = asyncio.get_running_loop()
        try:
            url = await loop.run_in_executor(None, self._put, key, data, content_type)
        except Exception as e:
            raise StorageError(f"Falha no upload para o S3: {e}")
        return StoredObject(key=key, url=url)

    async def delete(self, key: str) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self.client.delete_object(Bucket=self.bucket, Key=key))
            return True
        except Exception as e:
            logger.warning(f"Erro ao remover {key} do S3: {e}")
            return False


def build_storage(settings: Settings) -> StorageBackend:
    if settings.storage_backend == "s3":
        return S3Storage(
            bucket=settings.s3_bucket,
            endpoint=settings.s3_endpoint,
            region=settings.s3_region,
            public_endpoint=settings.s3_public_endpoint,
            sign_expire_seconds=settings.s3_sign_expire_seconds,
        )
    return LocalStorage(settings.upload_dir, settings.public_base)
