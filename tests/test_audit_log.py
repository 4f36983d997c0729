from datetime import datetime, timezone

from app.models.lease_agreement import AgreementStatus
from app.services.audit_log import CATEGORY_SIGNATURE, create_log, list_logs_for_agreement


def test_create_log_clips_fields_and_serialises_meta(db, manager, lease):
    agreement = manager.create_agreement(lease.id)
    entry = create_log(
        db,
        CATEGORY_SIGNATURE,
        "  Agreement signed  ",
        "",
        agreement_id=agreement.id,
        user_agent="ua" * 400,
        meta={"status": AgreementStatus.PENDING, "at": datetime(2026, 10, 19, tzinfo=timezone.utc), "roles": {"TENANT"}},
    )
    db.commit()

    assert entry.title == "Agreement signed"
    assert entry.message == "-"
    assert len(entry.user_agent) == 500
    assert entry.meta == {"status": "PENDING", "at": "2026-10-19T00:00:00+00:00", "roles": ["TENANT"]}
    assert [e.title for e in list_logs_for_agreement(db, agreement.id)] == ["Agreement created", "Agreement signed"]
