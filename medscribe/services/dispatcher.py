"""Continuações em background que sobrevivem à resposta HTTP.

A submissão dispara a chamada ao workflow como task asyncio e espera por ela
apenas durante uma janela curta. Depois disso a resposta segue para o browser
e a task continua no mesmo processo até gravar o resultado no job.

Isto é best-effort: se o processo for reciclado depois da resposta (deploys,
plataformas serverless), a task em curso perde-se e o job fica em 'pending'.
Entrega garantida exige uma fila durável (Celery, RQ, ...), fora deste
serviço.
"""
import asyncio
import logging
from typing import Awaitable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    def __init__(self):
        # referências fortes: o event loop só guarda referências fracas às tasks
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Task em background cancelada: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Task em background falhou ({task.get_name()}): {exc}")

    async def wait_briefly(self, task: asyncio.Task, grace_seconds: float) -> bool:
        """Espera pela task até ao fim da janela; devolve True se terminou"""
        if task.done():
            return True
        done, _ = await asyncio.wait({task}, timeout=grace_seconds)
        return task in done

    async def drain(self, timeout: float):
        """Aguarda as tasks pendentes no shutdown, sem as cancelar antes do prazo"""
        if not self._tasks:
            return
        logger.info(f"Aguardando {len(self._tasks)} hand-off(s) em curso")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            logger.warning(f"Hand-off não concluído no shutdown: {task.get_name()}")
            task.cancel()
