def ingest_customer(client, email: str, *, total_spent: float = 0, last_order_date: str | None = None, name: str = "Customer"):
    payload = {"name": name, "email": email, "total_spent": total_spent}
    if last_order_date:
        payload["last_order_date"] = last_order_date
    res = client.post("/customers", json=payload)
    assert res.status_code in {200, 201}, res.text
    return res.json()["data"]


def create_segment(client, headers, conditions: list[dict], *, logic: str = "AND", name: str = "Segment") -> str:
    res = client.post(
        "/segments",
        json={"name": name, "conditions": conditions, "logic": logic},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["id"]


def create_campaign(client, headers, segment_id: str, *, message: str = "Hello from Pulse") -> str:
    res = client.post(
        "/campaigns",
        json={"name": "Campaign", "segment_id": segment_id, "message": message},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    assert res.json()["status"] == "CREATED"
    return res.json()["id"]


def sequence_decision(outcomes: list[bool]):
    remaining = iter(outcomes)
    return lambda: next(remaining)
