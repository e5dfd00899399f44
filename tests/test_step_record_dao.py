import json
from datetime import datetime, timedelta, timezone

from binauthz_demo.models.step_record import STEP_STATUS_COMPLETED, STEP_STATUS_FAILED

SCOPE = "p/manually-verified/gcr.io/p/nginx:latest"


def test_mark_failed_then_completed_updates_one_row(step_record_dao):
    before = datetime.now(timezone.utc) - timedelta(seconds=1)

    failed = step_record_dao.mark_failed("attest-image", SCOPE, "resolve-digest", 4, "image not found")
    assert failed.status == STEP_STATUS_FAILED
    assert failed.error == "image not found"

    completed = step_record_dao.mark_completed(
        "attest-image", SCOPE, "resolve-digest", 4, {"digest": "sha256:abc"}
    )

    records = step_record_dao.list_records(workflow="attest-image", scope=SCOPE)
    assert len(records) == 1
    assert completed.uuid == failed.uuid
    assert records[0].status == STEP_STATUS_COMPLETED
    assert records[0].error is None
    assert json.loads(records[0].outputs) == {"digest": "sha256:abc"}

    updated_at = records[0].updated_at
    if updated_at.tzinfo is None:
        # sqlite hands back naive values; they are stored as UTC
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    assert updated_at >= before


def test_get_completed_ignores_failed_steps(step_record_dao):
    step_record_dao.mark_completed("attest-image", SCOPE, "create-note", 0, {})
    step_record_dao.mark_failed("attest-image", SCOPE, "ensure-signing-key", 1, "gpg missing")

    assert set(step_record_dao.get_completed("attest-image", SCOPE)) == {"create-note"}


def test_clear_only_touches_its_scope(step_record_dao):
    step_record_dao.mark_completed("attest-image", SCOPE, "create-note", 0, {})
    step_record_dao.mark_completed("attest-image", "other/scope", "create-note", 0, {})

    assert step_record_dao.clear("attest-image", SCOPE) == 1
    assert [r.scope for r in step_record_dao.list_records()] == ["other/scope"]
