import json

import pytest

from binauthz_demo.models.step_record import STEP_STATUS_COMPLETED, STEP_STATUS_FAILED
from binauthz_demo.services.pipeline import Pipeline, Step


def _recording_step(name: str, calls: list, outputs: dict | None = None):
    async def handler(context):
        calls.append(name)
        return outputs or {}

    return Step(name, handler)


@pytest.mark.asyncio
async def test_steps_run_in_order_and_share_context(step_record_dao):
    calls = []

    async def second(context):
        calls.append("second")
        return {"doubled": context["value"] * 2}

    pipeline = Pipeline(
        "wf",
        "scope",
        [_recording_step("first", calls, {"value": 21}), Step("second", second)],
        step_record_dao,
    )
    context = {}

    await pipeline.run(context)

    assert calls == ["first", "second"]
    assert context == {"value": 21, "doubled": 42}
    records = step_record_dao.list_records(workflow="wf")
    assert [r.step for r in records] == ["first", "second"]
    assert all(r.status == STEP_STATUS_COMPLETED for r in records)
    assert json.loads(records[1].outputs) == {"doubled": 42}


@pytest.mark.asyncio
async def test_failure_is_recorded_and_propagates(step_record_dao):
    calls = []

    async def broken(context):
        raise RuntimeError("registry unavailable")

    pipeline = Pipeline(
        "wf",
        "scope",
        [_recording_step("first", calls), Step("broken", broken), _recording_step("never", calls)],
        step_record_dao,
    )

    with pytest.raises(RuntimeError):
        await pipeline.run({})

    # Expect no compensation and no later steps
    assert calls == ["first"]
    failed = step_record_dao.find("wf", "scope", "broken")
    assert failed.status == STEP_STATUS_FAILED
    assert failed.error == "registry unavailable"


@pytest.mark.asyncio
async def test_resume_skips_completed_steps(step_record_dao):
    attempts = {"broken": 0}
    calls = []

    async def flaky(context):
        attempts["broken"] += 1
        if attempts["broken"] == 1:
            raise RuntimeError("transient")
        calls.append("flaky")
        return {"flaky": context["value"]}

    steps = [_recording_step("first", calls, {"value": 7}), Step("flaky", flaky), Step("verify", flaky, always_run=True)]
    pipeline = Pipeline("wf", "scope", steps, step_record_dao)

    with pytest.raises(RuntimeError):
        await pipeline.run({})

    context = {}
    skipped = await pipeline.run(context, resume=True)

    assert skipped == ["first"]
    assert calls == ["first", "flaky", "flaky"]
    assert context["value"] == 7


@pytest.mark.asyncio
async def test_resume_reruns_step_whose_file_vanished(step_record_dao, tmp_path):
    calls = []
    artifact = tmp_path / "payload.json"

    async def write_file(context):
        calls.append("write")
        artifact.write_text("{}")
        return {"payload_file": str(artifact)}

    pipeline = Pipeline("wf", "scope", [Step("write", write_file)], step_record_dao)
    await pipeline.run({})
    artifact.unlink()

    skipped = await pipeline.run({}, resume=True)

    assert skipped == []
    assert calls == ["write", "write"]


@pytest.mark.asyncio
async def test_fresh_run_clears_previous_markers(step_record_dao):
    calls = []
    pipeline = Pipeline("wf", "scope", [_recording_step("only", calls)], step_record_dao)
    other = Pipeline("wf", "other-scope", [_recording_step("only", calls)], step_record_dao)

    await pipeline.run({})
    await other.run({})
    skipped = await pipeline.run({})

    assert skipped == []
    assert calls == ["only", "only", "only"]
    assert len(step_record_dao.list_records(workflow="wf")) == 2
