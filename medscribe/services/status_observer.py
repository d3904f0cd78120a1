import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

TERMINAL = ("completed", "failed")


@dataclass
class ObservationResult:
    job_id: str
    status: Optional[str]
    job: Optional[Dict[str, Any]] = None
    timed_out: bool = False
    cancelled: bool = False

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL


class StatusObserver:
    """Polling do endpoint de leitura do job até estado terminal ou fim do orçamento"""

    def __init__(
            self,
            base_url: str,
            interval_seconds: float = 5.0,
            max_attempts: int = 60,
            token: Optional[str] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=30.0)
        self._stopped = asyncio.Event()

    async def _fetch(self, job_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self._client.get(f"/api/v1/transcriptions/{job_id}")
        except httpx.HTTPError as e:
            logger.warning(f"[{job_id}] Erro ao consultar status: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"[{job_id}] Consulta de status devolveu {response.status_code}")
            return None
        return response.json()

    async def observe(
            self,
            job_id: str,
            on_update: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> ObservationResult:
        last: Optional[Dict[str, Any]] = None
        try:
            for _ in range(self.max_attempts):
                job = await self._fetch(job_id)
                if job is not None:
                    last = job
                    if on_update:
                        on_update(job)
                    if job.get("status") in TERMINAL:
                        return ObservationResult(job_id, job["status"], job)

                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
                    return ObservationResult(job_id, last and last.get("status"), last, cancelled=True)
                except asyncio.TimeoutError:
                    pass

            return ObservationResult(job_id, last and last.get("status"), last, timed_out=True)
        except asyncio.CancelledError:
            await self.aclose()
            raise
        finally:
            if self._stopped.is_set():
                await self.aclose()

    def cancel(self):
        """Pára a observação em curso (p.ex. o utilizador saiu da página)"""
        self._stopped.set()

    async def aclose(self):
        if not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
