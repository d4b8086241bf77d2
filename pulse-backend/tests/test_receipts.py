import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.errors import StorageError, ValidationError
from app.main import app
from app.models.campaign import CommunicationLog
from app.services.messaging_provider import SimulatedProvider, get_messaging_provider
from app.services.receipt_service import (
    ReceiptBuffer,
    ReceiptReconciler,
    accept_receipt,
    receipt_buffer,
)
from helpers import create_campaign, create_segment, ingest_customer


def _sent_campaign(client, headers, emails: list[str]) -> str:
    for email in emails:
        ingest_customer(client, email, total_spent=100)
    segment_id = create_segment(client, headers, [{"field": "total_spent", "op": "gte", "value": 100}])
    campaign_id = create_campaign(client, headers, segment_id)
    app.dependency_overrides[get_messaging_provider] = lambda: SimulatedProvider(should_succeed=lambda: True)
    res = client.post(f"/campaigns/{campaign_id}/send", headers=headers)
    assert res.status_code == 200, res.text
    return campaign_id


def test_receipt_updates_matching_record_on_next_tick(test_context, auth_headers):
    client, session_local = test_context
    campaign_id = _sent_campaign(client, auth_headers, ["aisha@example.com"])

    res = client.post(
        "/delivery-receipts",
        json={"campaignId": campaign_id, "email": "AISHA@example.com", "status": "delivered"},
    )
    assert res.status_code == 202, res.text
    assert res.json()["data"]["customer_email"] == "aisha@example.com"
    assert res.json()["data"]["status"] == "DELIVERED"
    assert len(receipt_buffer) == 1

    summary = ReceiptReconciler(receipt_buffer, session_local).tick()

    assert (summary.drained, summary.matched, summary.unmatched) == (1, 1, 0)
    assert len(receipt_buffer) == 0
    log = client.get("/communication-log").json()["items"]
    assert log[0]["status"] == "DELIVERED"
    assert log[0]["delivered_at"] is not None


def test_unmatched_receipt_is_dropped_without_touching_the_log(test_context, auth_headers):
    client, session_local = test_context
    campaign_id = _sent_campaign(client, auth_headers, ["aisha@example.com"])
    before = client.get("/communication-log").json()["items"]

    client.post("/delivery-receipts", json={"campaign_id": campaign_id, "customer_email": "stranger@example.com"})
    summary = ReceiptReconciler(receipt_buffer, session_local).tick()

    assert (summary.drained, summary.matched, summary.unmatched) == (1, 0, 1)
    assert len(receipt_buffer) == 0
    assert client.get("/communication-log").json()["items"] == before


def test_receipt_without_status_defaults_to_sent(test_context):
    buffer = ReceiptBuffer()
    receipt = accept_receipt(buffer, campaign_id="c1", customer_email=" Bob@Example.com ")
    assert receipt.status == "SENT"
    assert receipt.customer_email == "bob@example.com"
    assert buffer.snapshot() == [receipt]


def test_receipt_missing_identifiers_is_rejected(test_context):
    client, _ = test_context
    res = client.post("/delivery-receipts", json={"status": "DELIVERED"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "bad_request"
    assert len(receipt_buffer) == 0

    with pytest.raises(ValidationError):
        accept_receipt(ReceiptBuffer(), campaign_id="c1", customer_email="  ")


def test_empty_buffer_tick_is_a_no_op(test_context):
    _, session_local = test_context
    summary = ReceiptReconciler(ReceiptBuffer(), session_local).tick()
    assert (summary.drained, summary.matched, summary.unmatched) == (0, 0, 0)


def test_receipts_arriving_after_drain_wait_for_the_next_tick():
    buffer = ReceiptBuffer()
    accept_receipt(buffer, campaign_id="c1", customer_email="a@example.com")
    drained = buffer.drain()
    accept_receipt(buffer, campaign_id="c1", customer_email="b@example.com")

    assert [receipt.customer_email for receipt in drained] == ["a@example.com"]
    assert [receipt.customer_email for receipt in buffer.snapshot()] == ["b@example.com"]


def test_first_record_in_insertion_order_wins(test_context, auth_headers, db_session):
    client, session_local = test_context
    campaign_id = _sent_campaign(client, auth_headers, ["aisha@example.com"])
    duplicate = CommunicationLog(
        id="log_duplicate",
        campaign_id=campaign_id,
        customer_email="aisha@example.com",
        status="SENT",
        message="Hello from Pulse",
        timestamp=db_session.execute(select(CommunicationLog.timestamp)).scalar_one(),
    )
    db_session.add(duplicate)
    db_session.commit()

    accept_receipt(receipt_buffer, campaign_id=campaign_id, customer_email="aisha@example.com", status="READ")
    ReceiptReconciler(receipt_buffer, session_local).tick()

    with session_local() as db:
        rows = db.execute(select(CommunicationLog).order_by(CommunicationLog.seq)).scalars().all()
        assert [row.status for row in rows] == ["READ", "SENT"]


class _BrokenCommitSession:
    def __init__(self, session):
        self._session = session

    def __getattr__(self, name):
        return getattr(self._session, name)

    def commit(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_failed_tick_restores_receipts_for_retry(test_context, auth_headers):
    client, session_local = test_context
    campaign_id = _sent_campaign(client, auth_headers, ["aisha@example.com"])
    buffer = ReceiptBuffer()
    accept_receipt(buffer, campaign_id=campaign_id, customer_email="aisha@example.com", status="DELIVERED")

    broken = ReceiptReconciler(buffer, lambda: _BrokenCommitSession(session_local()))
    with pytest.raises(StorageError):
        broken.tick()

    assert len(buffer) == 1
    with session_local() as db:
        assert db.execute(select(CommunicationLog.status)).scalar_one() == "SENT"

    summary = ReceiptReconciler(buffer, session_local).tick()
    assert summary.matched == 1
    assert len(buffer) == 0
    with session_local() as db:
        assert db.execute(select(CommunicationLog.status)).scalar_one() == "DELIVERED"
