"""
Tests for background export jobs.
"""

import asyncio
from uuid import uuid4

import pytest

from kitbash.core.archive import ZipArchiveWriter
from kitbash.core.canvas import Canvas
from kitbash.core.errors import ArchiveWriteError
from kitbash.core.execution import ExportEngine, ExportProgress, ExportStatus
from kitbash.core.export import ExportRequest
from kitbash.core.layers import LayerStore
from kitbash.core.session import Session


class FailingWriter:
    def write(self, result):
        raise ArchiveWriteError("disk full")


@pytest.fixture
def request_(make_image):
    store = LayerStore()
    store.add(make_image(2, 2), "a.png")
    store.add(make_image(2, 2), "b.png")
    return ExportRequest.from_store(store, Canvas(width=8, height=8), 2.0)


def test_completed_job(request_):
    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit(request_)
        return await engine.wait(job_id)

    job = asyncio.run(scenario())
    assert job.status is ExportStatus.COMPLETED
    assert len(job.result.images) == 2
    assert job.error is None
    assert job.completed_at >= job.started_at


def test_writes_archive(request_, tmp_path):
    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit(request_, ZipArchiveWriter(tmp_path / "out.zip"))
        return await engine.wait(job_id)

    job = asyncio.run(scenario())
    assert job.status is ExportStatus.COMPLETED
    assert (tmp_path / "out.zip").exists()


def test_session_snapshot_taken_at_submit(make_image):
    session = Session()
    layer_id = session.add_image(make_image(2, 2), "a.png")
    session.store.set_transform(layer_id, position=(3, 4))

    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit_session(session, export_scale=1.0)
        # Edits after submission must not reach the running export.
        session.store.set_transform(layer_id, position=(30, 40), scale=5.0)
        session.store.set_visibility(layer_id, False)
        return await engine.wait(job_id)

    job = asyncio.run(scenario())
    assert job.status is ExportStatus.COMPLETED
    assert len(job.result.images) == 1
    record = job.result.metadata[0]
    assert (record.x, record.y, record.scale, record.visible) == (3, 4, 1.0, True)
    assert session.store.get(layer_id).position == (30, 40)


def test_cancel_queued_job_writes_nothing(request_, tmp_path):
    target = tmp_path / "out.zip"

    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit(request_, ZipArchiveWriter(target))
        cancelled = await engine.cancel(job_id)
        return cancelled, await engine.wait(job_id)

    cancelled, job = asyncio.run(scenario())
    assert cancelled is True
    assert job.status is ExportStatus.CANCELLED
    assert job.result is None
    assert not target.exists()


def test_cancel_running_job_writes_nothing(request_, tmp_path):
    target = tmp_path / "out.zip"

    async def scenario():
        engine = ExportEngine()

        def on_progress(progress: ExportProgress) -> None:
            if progress.status is ExportStatus.RUNNING and engine.current_job is not None:
                engine.current_job.cancel_event.set()

        engine.set_progress_callback(on_progress)
        job_id = await engine.submit(request_, ZipArchiveWriter(target))
        return await engine.wait(job_id)

    job = asyncio.run(scenario())
    assert job.status is ExportStatus.CANCELLED
    assert not target.exists()
    assert list(tmp_path.iterdir()) == []


def test_failed_writer(request_):
    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit(request_, FailingWriter())
        return await engine.wait(job_id)

    job = asyncio.run(scenario())
    assert job.status is ExportStatus.FAILED
    assert "disk full" in job.error
    assert job.result is None


def test_progress_and_completion_callbacks(request_):
    progress: list[ExportProgress] = []
    completed = []

    async def scenario():
        engine = ExportEngine()
        engine.set_progress_callback(progress.append)
        engine.set_completion_callback(completed.append)
        first = await engine.submit(request_)
        second = await engine.submit(request_)
        await engine.wait(first)
        await engine.wait(second)
        return first, second

    first, second = asyncio.run(scenario())
    assert [job.id for job in completed] == [first, second]
    final = [p for p in progress if p.status is ExportStatus.COMPLETED]
    assert [p.job_id for p in final] == [first, second]
    assert final[0].progress_percent == 100.0


def test_cancel_all(request_):
    async def scenario():
        engine = ExportEngine()
        ids = [await engine.submit(request_) for _ in range(3)]
        await engine.cancel_all()
        return [await engine.wait(job_id) for job_id in ids]

    jobs = asyncio.run(scenario())
    assert all(job.status is ExportStatus.CANCELLED for job in jobs)


def test_wait_unknown_job():
    async def scenario():
        await ExportEngine().wait(uuid4())

    with pytest.raises(KeyError):
        asyncio.run(scenario())


def test_finished_jobs_release_snapshots(request_, tmp_path):
    async def scenario():
        engine = ExportEngine()
        jobs = []
        for i in range(5):
            job_id = await engine.submit(request_, ZipArchiveWriter(tmp_path / f"out{i}.zip"))
            jobs.append(await engine.wait(job_id))
        return engine, jobs

    engine, jobs = asyncio.run(scenario())
    assert all(job.status is ExportStatus.COMPLETED for job in jobs)
    assert all(job.request is None and job.result is None for job in jobs)
    assert all(engine.get_job(job.id) is None for job in jobs)
    assert len(list(tmp_path.iterdir())) == 5


def test_in_memory_job_keeps_result_only(request_):
    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit(request_)
        return engine, await engine.wait(job_id)

    engine, job = asyncio.run(scenario())
    assert job.request is None
    assert len(job.result.images) == 2
    assert engine.get_job(job.id) is None


def test_forget(request_):
    async def scenario():
        engine = ExportEngine()
        job_id = await engine.submit(request_)
        pending = engine.forget(job_id)
        await engine.cancel(job_id)
        return engine, job_id, pending

    engine, job_id, pending = asyncio.run(scenario())
    assert pending is False
    assert engine.get_job(job_id).status is ExportStatus.CANCELLED
    assert engine.forget(job_id) is True
    assert engine.get_job(job_id) is None
    assert engine.forget(job_id) is False


def test_failing_callbacks_do_not_stop_queue(request_, caplog):
    def explode(_):
        raise RuntimeError("callback bug")

    async def scenario():
        engine = ExportEngine()
        engine.set_progress_callback(explode)
        engine.set_completion_callback(explode)
        first = await engine.submit(request_)
        second = await engine.submit(request_)
        return [
            await asyncio.wait_for(engine.wait(job_id), timeout=10)
            for job_id in (first, second)
        ]

    jobs = asyncio.run(scenario())
    assert [job.status for job in jobs] == [ExportStatus.COMPLETED, ExportStatus.COMPLETED]
    assert "Completion callback failed" in caplog.text
