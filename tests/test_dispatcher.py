import asyncio

from medscribe.services.dispatcher import BackgroundDispatcher


def test_fast_task_finishes_inside_grace_window():
    async def run():
        dispatcher = BackgroundDispatcher()

        async def work():
            return "done"

        task = dispatcher.spawn(work(), name="fast")
        finished = await dispatcher.wait_briefly(task, 1.0)
        return finished, task.result(), dispatcher.pending

    finished, result, pending = asyncio.run(run())

    assert finished is True
    assert result == "done"
    assert pending == 0


def test_slow_task_keeps_running_after_grace_window():
    async def run():
        dispatcher = BackgroundDispatcher()
        written = []

        async def work():
            await asyncio.sleep(0.1)
            written.append("status")

        task = dispatcher.spawn(work(), name="slow")
        finished = await dispatcher.wait_briefly(task, 0.01)
        still_pending = dispatcher.pending
        await dispatcher.drain(1.0)
        return finished, still_pending, written, task.cancelled()

    finished, still_pending, written, cancelled = asyncio.run(run())

    assert finished is False
    assert still_pending == 1
    assert written == ["status"]
    assert cancelled is False


def test_drain_cancels_tasks_past_the_deadline():
    async def run():
        dispatcher = BackgroundDispatcher()
        task = dispatcher.spawn(asyncio.sleep(10), name="stuck")
        await dispatcher.drain(0.01)
        await asyncio.gather(task, return_exceptions=True)
        return task.cancelled(), dispatcher.pending

    cancelled, pending = asyncio.run(run())

    assert cancelled is True
    assert pending == 0


def test_failed_task_is_released(caplog):
    async def run():
        dispatcher = BackgroundDispatcher()

        async def work():
            raise RuntimeError("workflow exploded")

        task = dispatcher.spawn(work(), name="hand-off:job-1")
        await dispatcher.wait_briefly(task, 1.0)
        await asyncio.sleep(0)
        return dispatcher.pending

    assert asyncio.run(run()) == 0
    assert "workflow exploded" in caplog.text
