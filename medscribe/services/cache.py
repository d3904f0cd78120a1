import json
import logging
from typing import Optional

from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class JobCache:
    """Cache Redis dos jobs terminados; falhas aqui nunca derrubam o pedido"""

    def __init__(self, redis_client=None, ttl_seconds: int = 86400):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    @staticmethod
    def _key(job_id: str) -> str:
        return f"job:{job_id}"

    async def get(self, job_id: str) -> Optional[TranscriptionResult]:
        """Recupera resultado do cache Redis"""
        if not self.enabled:
            return None
        try:
            cached_data = await self.redis_client.get(self._key(job_id))
            if cached_data:
                return TranscriptionResult(**json.loads(cached_data))
            return None
        except Exception as e:
            logger.warning(f"[{job_id}] Erro ao buscar no Redis: {e}")
            return None

    async def save(self, result: TranscriptionResult):
        """Salva resultado no cache Redis"""
        if not self.enabled:
            return
        try:
            await self.redis_client.setex(
                self._key(result.id),
                self.ttl_seconds,
                json.dumps(result.model_dump(mode="json"), ensure_ascii=False)
            )
        except Exception as e:
            logger.warning(f"[{result.id}] Erro ao salvar no Redis: {e}")

    async def invalidate(self, job_id: str):
        if not self.enabled:
            return
        try:
            await self.redis_client.delete(self._key(job_id))
        except Exception as e:
            logger.warning(f"[{job_id}] Erro ao invalidar cache no Redis: {e}")

    async def close(self):
        if self.enabled:
            await self.redis_client.aclose()
