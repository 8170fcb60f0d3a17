"""End-to-end tests for the /tax routes."""
from conftest import TENANT, utc


def _setup_profile(client, **overrides):
    payload = {
        "vat_id": "DE123456789",
        "vat_accounting_method": "SOLL",
        "filing_frequency": "QUARTERLY",
        "effective_from": "2024-01-01T00:00:00Z",
    }
    payload.update(overrides)
    resp = client.put("/tax/profile", json=payload)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _generate_q1(client, documents):
    documents.invoice(utc(2025, 2, 3), 10000, 1900)
    resp = client.post("/tax/reports/generate", json={"period_key": "2025-Q1"})
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_missing_tenant_header(client):
    resp = client.get("/tax/profile", headers={"X-Tenant-Id": ""})
    assert resp.status_code == 401


def test_profile_roundtrip(client):
    assert client.get("/tax/profile").status_code == 404

    created = _setup_profile(client)
    assert created["tenant_id"] == TENANT
    assert created["country"] == "DE"
    assert created["effective_to"] is None

    prof = client.get("/tax/profile")
    assert prof.status_code == 200, prof.text
    assert prof.json()["vat_id"] == "DE123456789"

    history = client.get("/tax/profile/history")
    assert [p["id"] for p in history.json()] == [created["id"]]


def test_profile_rejects_invalid_values(client):
    resp = client.put("/tax/profile", json={"regime": "FLAT_RATE"})
    assert resp.status_code == 422
    resp = client.put("/tax/profile", json={"country": "D1"})
    assert resp.status_code == 400


def test_generate_and_report_lifecycle(client, documents):
    _setup_profile(client)
    result = _generate_q1(client, documents)

    assert result["profile_missing"] is False
    assert [r["type"] for r in result["reports"]] == ["VAT_ADVANCE"]
    report_id = result["reports"][0]["report_id"]

    listed = client.get("/tax/reports").json()
    assert [r["id"] for r in listed] == [report_id]
    assert listed[0]["stored_status"] == "OPEN"
    # Due 2025-04-10, long passed
    assert listed[0]["status"] == "OVERDUE"
    assert listed[0]["amount_estimated_cents"] == 1900
    assert listed[0]["lines"][-1]["label"] == "VAT payable"

    early = client.post(f"/tax/reports/{report_id}/mark-paid", json={})
    assert early.status_code == 409
    assert early.json()["error"]["code"] == "RPT201"

    submitted = client.post(f"/tax/reports/{report_id}/submit", json={"reference": "ELSTER-7"})
    assert submitted.status_code == 200, submitted.text
    assert submitted.json()["status"] == "SUBMITTED"

    filed = client.get("/tax/reports", params={"status": "submitted"}).json()
    assert [r["id"] for r in filed] == [report_id]

    paid = client.post(f"/tax/reports/{report_id}/mark-paid", json={"method": "bank_transfer"})
    assert paid.status_code == 200, paid.text
    assert paid.json()["status"] == "PAID"

    payments = client.get("/tax/payments", params={"year": 2025}).json()
    assert payments[0]["payment_status"] == "paid"
    assert payments[0]["amount_cents"] == 1900


def test_generate_without_profile(client):
    resp = client.post("/tax/reports/generate", json={"period_key": "2025-Q1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["profile_missing"] is True
    assert body["reports"] == []


def test_generate_requires_period(client):
    assert client.post("/tax/reports/generate", json={}).status_code == 400
    bad = client.post("/tax/reports/generate", json={"period_key": "2025-Q5"})
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "PER001"


def test_duplicate_filing_conflicts(client, documents):
    _setup_profile(client)
    _generate_q1(client, documents)

    resp = client.post("/tax/filings", json={"type": "VAT_ADVANCE", "period_key": "2025-Q1"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "RPT202"

    created = client.post("/tax/filings", json={"type": "EU_SALES_LIST", "period_key": "2025-Q1"})
    assert created.status_code == 201, created.text


def test_unknown_report_is_404(client):
    resp = client.get("/tax/reports/9999")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "RPT200"


def test_issues_block_submission(client, documents):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]

    issues = [{"id": "i1", "type": "data", "severity": "blocker", "title": "Unbooked bank transactions"}]
    assert client.put(f"/tax/reports/{report_id}/issues", json={"issues": issues}).status_code == 200
    assert client.post(f"/tax/reports/{report_id}/submit", json={}).status_code == 409


def test_delete_pending_report(client, documents):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]

    assert client.delete(f"/tax/reports/{report_id}").status_code == 204
    assert client.get(f"/tax/reports/{report_id}").status_code == 404


def test_vat_periods_for_year(client, documents):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]

    resp = client.get("/tax/periods", params={"year": 2025})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["frequency"] == "QUARTERLY"
    assert [p["key"] for p in body["periods"]] == ["2025-Q1", "2025-Q2", "2025-Q3", "2025-Q4"]
    assert body["periods"][0]["report_id"] == report_id
    assert body["periods"][1]["report_id"] is None
    assert body["periods"][1]["due_date"].startswith("2025-07-10")


def test_period_summary_and_details(client, documents):
    _setup_profile(client)
    documents.invoice(utc(2025, 2, 3), 10000, 1900)
    documents.expense(utc(2025, 2, 5), 1190, 190)

    summary = client.get("/tax/periods/2025-Q1")
    assert summary.status_code == 200, summary.text
    assert summary.json()["totals"]["vat_payable_cents"] == 1710

    details = client.get("/tax/periods/2025-Q1/details", params={"source_type": "EXPENSE"}).json()
    assert details["sales"] == []
    assert [row["net_cents"] for row in details["purchases"]] == [1000]

    assert client.get("/tax/periods/2025-13").status_code == 400


def test_report_pdf_url(client, documents, storage):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]

    pending = client.get(f"/tax/reports/{report_id}/pdf-url")
    assert pending.status_code == 200
    assert pending.json()["status"] == "PENDING"

    key = storage.upload_bytes(b"%PDF-1.4", f"{TENANT}/{report_id}.pdf")
    attached = client.post(f"/tax/reports/{report_id}/document", json={"storage_key": key})
    assert attached.json()["has_document"] is True

    ready = client.get(f"/tax/reports/{report_id}/pdf-url").json()
    assert ready["status"] == "READY"
    assert ready["download_url"]


def test_summary_endpoint(client):
    resp = client.get("/tax/summary")
    assert resp.status_code == 200
    assert resp.json()["configuration_status"] == "MISSING_SETTINGS"


def test_calculate_and_lock_snapshot(client):
    _setup_profile(client)
    payload = {
        "document_date": "2025-03-01T10:00:00Z",
        "lines": [{"net_amount_cents": 10000, "vat_kind": "standard"}, {"net_amount_cents": 1000, "vat_kind": "REDUCED"}],
    }

    calc = client.post("/tax/calculate", json=payload)
    assert calc.status_code == 200, calc.text
    assert calc.json()["taxTotalAmountCents"] == 1970

    lock = client.post("/tax/snapshots/lock", json={**payload, "source_type": "INVOICE", "source_id": "inv_9"})
    assert lock.status_code == 200, lock.text
    again = client.post("/tax/snapshots/lock", json={**payload, "source_type": "INVOICE", "source_id": "inv_9"})
    assert again.json()["id"] == lock.json()["id"]

    fetched = client.get("/tax/snapshots/invoice/inv_9")
    assert fetched.status_code == 200
    assert fetched.json()["breakdown"]["totalAmountCents"] == 12970

    assert client.get("/tax/snapshots/INVOICE/missing").status_code == 404
    bad = client.post("/tax/calculate", json={**payload, "jurisdiction": "FR"})
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "CAL400"


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/metrics").status_code == 200


def test_report_attachments(client, documents):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]

    created = client.post(
        f"/tax/reports/{report_id}/attachments",
        json={"document_id": "doc_1", "file_name": "bank-statement.pdf"},
    )
    assert created.status_code == 201, created.text
    attachment_id = created.json()["id"]

    uploaded = client.post(
        f"/tax/reports/{report_id}/attachments/upload",
        files={"file": ("notice.pdf", b"%PDF-1.4 notice", "application/pdf")},
    )
    assert uploaded.status_code == 201, uploaded.text
    assert uploaded.json()["download_url"].startswith("file://")

    listed = client.get(f"/tax/reports/{report_id}/attachments").json()
    assert [a["file_name"] for a in listed] == ["bank-statement.pdf", "notice.pdf"]

    assert client.delete(f"/tax/reports/{report_id}/attachments/{attachment_id}").status_code == 204
    missing = client.delete(f"/tax/reports/{report_id}/attachments/{attachment_id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "RPT204"


def test_empty_upload_rejected(client, documents):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]

    resp = client.post(
        f"/tax/reports/{report_id}/attachments/upload",
        files={"file": ("empty.pdf", b"", "application/pdf")},
    )
    assert resp.status_code == 400


def test_report_activity(client, documents):
    _setup_profile(client)
    report_id = _generate_q1(client, documents)["reports"][0]["report_id"]
    client.post(f"/tax/reports/{report_id}/submit", json={"reference": "ELSTER-9"})

    activity = client.get(f"/tax/reports/{report_id}/activity")
    assert activity.status_code == 200, activity.text
    body = activity.json()
    assert [a["action"] for a in body] == ["created", "submitted"]
    assert body[1]["status_before"] == "OPEN"
    assert body[1]["detail"]["reference"] == "ELSTER-9"

    assert client.get("/tax/reports/9999/activity").status_code == 404
