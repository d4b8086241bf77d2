import json

from helpers import create_segment, ingest_customer

LAPSED_BIG_SPENDERS = {
    "conditions": [
        {"field": "total_spent", "op": "gt", "value": 50},
        {"field": "last_order_date", "operator": "lt", "value": "2024-01-01"},
    ],
    "logic": "AND",
}


def _seed(client):
    ingest_customer(client, "lapsed@example.com", total_spent=120, last_order_date="2023-06-01T00:00:00Z")
    ingest_customer(client, "active@example.com", total_spent=300, last_order_date="2024-04-01T00:00:00Z")
    ingest_customer(client, "never@example.com", total_spent=80)
    ingest_customer(client, "small@example.com", total_spent=10)


def test_preview_counts_audience_and_returns_sample(test_context):
    client, _ = test_context
    _seed(client)

    res = client.post("/segments/preview", json=LAPSED_BIG_SPENDERS)

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["audience_count"] == 2
    assert [row["email"] for row in body["sample"]] == ["lapsed@example.com", "never@example.com"]


def test_preview_or_logic_widens_the_audience(test_context):
    client, _ = test_context
    _seed(client)

    res = client.post("/segments/preview", json={**LAPSED_BIG_SPENDERS, "logic": "or"})

    assert res.json()["audience_count"] == 4


def test_preview_sample_is_capped_at_ten(test_context):
    client, _ = test_context
    for i in range(12):
        ingest_customer(client, f"c{i}@example.com", total_spent=100)

    body = client.post(
        "/segments/preview",
        json={"conditions": [{"field": "total_spent", "op": "gte", "value": 100}]},
    ).json()

    assert body["audience_count"] == 12
    assert len(body["sample"]) == 10


def test_preview_via_query_string_rule(test_context):
    client, _ = test_context
    _seed(client)

    res = client.get("/segments/preview", params={"rule": json.dumps(LAPSED_BIG_SPENDERS)})

    assert res.status_code == 200, res.text
    assert res.json()["audience_count"] == 2


def test_preview_rejects_bad_rules(test_context):
    client, _ = test_context
    assert client.post("/segments/preview", json={"conditions": []}).status_code == 422
    assert (
        client.post(
            "/segments/preview",
            json={"conditions": [{"field": "total_spent", "op": "between", "value": 1}]},
        ).status_code
        == 422
    )
    bad_json = client.get("/segments/preview", params={"rule": "{not json"})
    assert bad_json.status_code == 400
    assert bad_json.json()["error"]["code"] == "bad_request"


def test_saved_segment_round_trips_rules_and_owner(test_context, auth_headers):
    client, _ = test_context
    segment_id = create_segment(client, auth_headers, LAPSED_BIG_SPENDERS["conditions"], name="Lapsed")

    listing = client.get("/segments", headers=auth_headers).json()

    assert listing["pagination"]["total"] == 1
    segment = listing["items"][0]
    assert segment["id"] == segment_id
    assert segment["logic"] == "AND"
    assert segment["created_by"] == "marketer@pulse.test"
    assert segment["conditions"][1] == {"field": "last_order_date", "op": "lt", "value": "2024-01-01"}


def test_segment_endpoints_require_identity(test_context):
    client, _ = test_context
    assert client.post("/segments", json={"name": "x", **LAPSED_BIG_SPENDERS}).status_code == 401
    res = client.get("/segments")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "unauthorized"
