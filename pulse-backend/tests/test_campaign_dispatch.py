import pytest
from sqlalchemy import delete, event, select, update

from app.core.errors import CampaignAlreadyDispatched, StorageError
from app.main import app
from app.models.campaign import Campaign, CommunicationLog, Segment
from app.services import dispatch_service
from app.services.dispatch_service import send_campaign
from app.services.messaging_provider import MessageSendRequest, SimulatedProvider, get_messaging_provider
from helpers import create_campaign, create_segment, ingest_customer, sequence_decision

BIG_SPENDERS = [{"field": "total_spent", "op": "gt", "value": 50}]


def _force_outcomes(outcomes: list[bool]) -> None:
    decide = sequence_decision(outcomes)
    app.dependency_overrides[get_messaging_provider] = lambda: SimulatedProvider(should_succeed=decide)


def test_forced_mixed_outcomes_mark_campaign_partial_failed(test_context, auth_headers):
    client, session_local = test_context
    for i in range(5):
        ingest_customer(client, f"buyer{i}@example.com", total_spent=100 + i)
    ingest_customer(client, "small@example.com", total_spent=10)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    _force_outcomes([True, True, True, False, False])

    res = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers)

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["campaign_status"] == "PARTIAL_FAILED"
    assert body["audience_count"] == 5
    assert body["sent"] == 3
    assert body["failed"] == 2
    assert [row["status"] for row in body["sample"]] == ["SENT", "SENT", "SENT", "FAILED", "FAILED"]

    with session_local() as db:
        records = db.execute(
            select(CommunicationLog).where(CommunicationLog.campaign_id == campaign_id).order_by(CommunicationLog.seq)
        ).scalars().all()
        assert [record.customer_email for record in records] == [f"buyer{i}@example.com" for i in range(5)]
        assert all(record.message == "Hello from Pulse" for record in records)
        campaign = db.get(Campaign, campaign_id)
        assert (campaign.audience_count, campaign.sent_count, campaign.failed_count) == (5, 3, 2)
        assert campaign.dispatched_at is not None


def test_sample_is_capped_at_five_records(test_context, auth_headers):
    client, _ = test_context
    for i in range(7):
        ingest_customer(client, f"vip{i}@example.com", total_spent=500)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    _force_outcomes([True] * 7)

    body = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers).json()

    assert body["campaign_status"] == "SENT"
    assert body["sent"] == 7
    assert len(body["sample"]) == 5
    log = client.get("/communication-log", params={"campaign_id": campaign_id}).json()
    assert log["pagination"]["total"] == 7


def test_zero_match_segment_ends_with_no_audience(test_context, auth_headers):
    client, session_local = test_context
    ingest_customer(client, "small@example.com", total_spent=10)
    segment_id = create_segment(client, auth_headers, [{"field": "total_spent", "op": "gt", "value": 10000}])
    campaign_id = create_campaign(client, auth_headers, segment_id)

    res = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers)

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["campaign_status"] == "NO_AUDIENCE"
    assert (body["audience_count"], body["sent"], body["failed"]) == (0, 0, 0)
    assert body["sample"] == []
    with session_local() as db:
        assert db.execute(select(CommunicationLog)).scalars().all() == []


def test_second_send_is_rejected_without_new_records(test_context, auth_headers):
    client, session_local = test_context
    ingest_customer(client, "buyer@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    _force_outcomes([True])

    first = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers)
    assert first.status_code == 200, first.text
    assert first.json()["campaign_status"] == "SENT"

    second = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers)
    assert second.status_code == 409, second.text
    assert second.json()["error"]["code"] == "conflict"

    with session_local() as db:
        assert len(db.execute(select(CommunicationLog)).scalars().all()) == 1
        campaign = db.get(Campaign, campaign_id)
        assert campaign.status == "SENT"
        assert (campaign.sent_count, campaign.failed_count) == (1, 0)


def test_campaign_already_claimed_by_another_send_is_rejected(test_context, auth_headers):
    client, session_local = test_context
    ingest_customer(client, "buyer@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    with session_local() as db:
        db.execute(update(Campaign).where(Campaign.id == campaign_id).values(status="SENDING"))
        db.commit()

    res = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers)

    assert res.status_code == 409


def test_send_unknown_campaign_returns_404(test_context, auth_headers):
    client, _ = test_context
    res = client.post("/campaigns/missing/send", headers=auth_headers)
    assert res.status_code == 404
    assert res.json()["error"]["message"] == "Campaign not found"


def test_missing_segment_aborts_send_and_keeps_campaign_created(test_context, auth_headers):
    client, session_local = test_context
    ingest_customer(client, "buyer@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    with session_local() as db:
        db.execute(delete(Segment).where(Segment.id == segment_id))
        db.commit()

    res = client.post(f"/campaigns/{campaign_id}/send", headers=auth_headers)

    assert res.status_code == 404
    assert res.json()["error"]["message"] == "Segment not found"
    with session_local() as db:
        assert db.get(Campaign, campaign_id).status == "CREATED"


def test_create_campaign_for_unknown_segment_returns_404(test_context, auth_headers):
    client, _ = test_context
    res = client.post(
        "/campaigns",
        json={"name": "Orphan", "segmentId": "nope", "message": "Hi"},
        headers=auth_headers,
    )
    assert res.status_code == 404


def test_campaign_endpoints_require_identity(test_context):
    client, _ = test_context
    assert client.post("/campaigns", json={"name": "x", "segment_id": "y", "message": "z"}).status_code == 401
    assert client.get("/campaigns").status_code == 401
    assert client.post("/campaigns/anything/send").status_code == 401


class _FlakyProvider:
    name = "flaky"

    def __init__(self):
        self.calls = 0
        self._inner = SimulatedProvider(should_succeed=lambda: True)

    def send_message(self, request: MessageSendRequest):
        self.calls += 1
        if self.calls == 2:
            raise RuntimeError("vendor timeout")
        return self._inner.send_message(request)


def test_provider_exception_is_recorded_as_failed_attempt(test_context, auth_headers, db_session):
    client, _ = test_context
    for i in range(3):
        ingest_customer(client, f"buyer{i}@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)

    result = send_campaign(db_session, campaign_id, provider=_FlakyProvider())

    assert (result.audience_count, result.sent, result.failed) == (3, 2, 1)
    assert result.campaign.status == "PARTIAL_FAILED"
    failed = [record for record in result.sample if record.status == "FAILED"]
    assert len(failed) == 1
    assert failed[0].customer_email == "buyer1@example.com"
    assert failed[0].error_message == "vendor timeout"


def test_service_rejects_already_dispatched_campaign(test_context, auth_headers, db_session):
    client, _ = test_context
    ingest_customer(client, "buyer@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    provider = SimulatedProvider(should_succeed=lambda: False)

    first = send_campaign(db_session, campaign_id, provider=provider)
    assert first.campaign.status == "PARTIAL_FAILED"
    assert first.failed == 1

    with pytest.raises(CampaignAlreadyDispatched):
        send_campaign(db_session, campaign_id, provider=provider)


def _fail_log_append_on(monkeypatch, attempt: int) -> None:
    real_commit = dispatch_service.commit_or_raise
    appends = {"count": 0}

    def commit(db, *, operation):
        if operation == "communication_log.append":
            appends["count"] += 1
            if appends["count"] == attempt:
                db.rollback()
                raise StorageError(f"Failed to persist {operation}")
        real_commit(db, operation=operation)

    monkeypatch.setattr(dispatch_service, "commit_or_raise", commit)


def _log_records(db, campaign_id):
    return db.execute(
        select(CommunicationLog).where(CommunicationLog.campaign_id == campaign_id).order_by(CommunicationLog.seq)
    ).scalars().all()


def test_storage_failure_mid_dispatch_finalizes_from_written_records(
    test_context, auth_headers, db_session, monkeypatch
):
    client, session_local = test_context
    for i in range(3):
        ingest_customer(client, f"buyer{i}@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    provider = SimulatedProvider(should_succeed=lambda: True)
    _fail_log_append_on(monkeypatch, 2)

    with pytest.raises(StorageError):
        send_campaign(db_session, campaign_id, provider=provider)

    with session_local() as db:
        campaign = db.execute(select(Campaign).where(Campaign.id == campaign_id)).scalar_one()
        assert campaign.status == "PARTIAL_FAILED"
        assert (campaign.audience_count, campaign.sent_count, campaign.failed_count) == (3, 1, 0)
        assert [record.customer_email for record in _log_records(db, campaign_id)] == ["buyer0@example.com"]

    monkeypatch.undo()
    with pytest.raises(CampaignAlreadyDispatched):
        send_campaign(db_session, campaign_id, provider=provider)
    with session_local() as db:
        assert len(_log_records(db, campaign_id)) == 1


def test_storage_failure_before_any_record_returns_campaign_to_created(
    test_context, auth_headers, db_session, monkeypatch
):
    client, session_local = test_context
    for i in range(2):
        ingest_customer(client, f"buyer{i}@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    provider = SimulatedProvider(should_succeed=lambda: True)
    _fail_log_append_on(monkeypatch, 1)

    with pytest.raises(StorageError):
        send_campaign(db_session, campaign_id, provider=provider)

    with session_local() as db:
        campaign = db.execute(select(Campaign).where(Campaign.id == campaign_id)).scalar_one()
        assert campaign.status == "CREATED"
        assert _log_records(db, campaign_id) == []

    monkeypatch.undo()
    result = send_campaign(db_session, campaign_id, provider=provider)
    assert result.campaign.status == "SENT"
    assert (result.audience_count, result.sent, result.failed) == (2, 2, 0)


def test_campaign_row_is_not_reloaded_per_recipient(test_context, auth_headers, db_session):
    client, _ = test_context
    for i in range(6):
        ingest_customer(client, f"buyer{i}@example.com", total_spent=100)
    segment_id = create_segment(client, auth_headers, BIG_SPENDERS)
    campaign_id = create_campaign(client, auth_headers, segment_id)
    engine = db_session.get_bind()
    campaign_selects = []

    def count_campaign_selects(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT") and "FROM campaigns" in statement:
            campaign_selects.append(statement)

    event.listen(engine, "before_cursor_execute", count_campaign_selects)
    try:
        result = send_campaign(db_session, campaign_id, provider=SimulatedProvider(should_succeed=lambda: True))
    finally:
        event.remove(engine, "before_cursor_execute", count_campaign_selects)

    assert result.sent == 6
    assert len(campaign_selects) <= 3
