import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import Base
from services import seed_defaults


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with TestSession() as session:
        seed_defaults(session)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = override_get_db
    main.report_guard = main.LatestRequestGuard()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def _headers(client, user_id="u1"):
    token = client.get("/api/csrf-token", headers={"X-User-Id": user_id}).json()
    return {"X-User-Id": user_id, "X-CSRF-Token": token["csrf_token"]}


def _reference_ids(client, headers):
    categories = client.get("/api/categories", headers=headers).json()
    methods = client.get("/api/payment-methods", headers=headers).json()
    by_name = {c["name"]: c["id"] for c in categories}
    return by_name, {m["value"]: m["id"] for m in methods}


def test_requests_without_user_are_rejected(client):
    assert client.get("/api/categories").status_code == 401


def test_writes_require_csrf_token(client):
    headers = _headers(client)
    body = {"name": "Hobby", "icon": "palette", "color": "#112233"}

    missing = client.post("/api/categories", json=body, headers={"X-User-Id": "u1"})
    assert missing.status_code == 403

    other_user = _headers(client, "u2")
    other_user["X-User-Id"] = "u1"
    forged = client.post("/api/categories", json=body, headers=other_user)
    assert forged.status_code == 403

    created = client.post("/api/categories", json=body, headers=headers)
    assert created.status_code == 201
    assert created.json()["is_default"] is False


def test_expense_crud(client):
    headers = _headers(client)
    categories, methods = _reference_ids(client, headers)
    payload = {
        "category_id": categories["Groceries"],
        "amount": "42.50",
        "date": "2024-03-10",
        "spender": "Alex",
        "payment_method_id": methods["cash"],
    }
    created = client.post("/api/expenses", json=payload, headers=headers)
    assert created.status_code == 201
    expense = created.json()
    assert expense["amount_cents"] == 4250
    assert expense["category"]["name"] == "Groceries"

    payload["amount"] = "10"
    updated = client.put(
        f"/api/expenses/{expense['id']}", json=payload, headers=headers
    )
    assert updated.json()["amount_cents"] == 1000

    listed = client.get(
        "/api/expenses", params={"start": "2024-03-01"}, headers=headers
    ).json()
    assert [e["id"] for e in listed] == [expense["id"]]

    deleted = client.delete(f"/api/expenses/{expense['id']}", headers=headers)
    assert deleted.status_code == 204
    missing = client.get(f"/api/expenses/{expense['id']}", headers=headers)
    assert missing.status_code == 404


def test_invalid_expense_returns_client_error(client):
    headers = _headers(client)
    categories, methods = _reference_ids(client, headers)
    payload = {
        "category_id": categories["Groceries"],
        "amount_cents": 500,
        "date": "2024-03-10",
        "spender": " ",
        "payment_method_id": methods["cash"],
    }
    response = client.post("/api/expenses", json=payload, headers=headers)
    assert response.status_code == 400

    payload.update(spender="Alex", amount_cents=0)
    response = client.post("/api/expenses", json=payload, headers=headers)
    assert response.status_code == 422


def test_deleting_category_in_use_conflicts(client):
    headers = _headers(client)
    category = client.post(
        "/api/categories",
        json={"name": "Hobby", "icon": "palette", "color": "#112233"},
        headers=headers,
    ).json()
    _, methods = _reference_ids(client, headers)
    client.post(
        "/api/expenses",
        json={
            "category_id": category["id"],
            "amount_cents": 900,
            "date": "2024-03-01",
            "spender": "Alex",
            "payment_method_id": methods["cash"],
        },
        headers=headers,
    )

    response = client.delete(f"/api/categories/{category['id']}", headers=headers)
    assert response.status_code == 409
    assert "linked expenses" in response.json()["detail"]
    count = client.get(
        f"/api/categories/{category['id']}/expense-count", headers=headers
    )
    assert count.json() == {"count": 1}


def test_recurring_confirm_flow(client):
    headers = _headers(client)
    categories, methods = _reference_ids(client, headers)
    template = client.post(
        "/api/recurring",
        json={
            "category_id": categories["Housing"],
            "amount_cents": 120000,
            "description": "Rent",
            "spender": "Alex",
            "payment_method_id": methods["bank_transfer"],
            "frequency": "monthly",
            "start_date": "2024-01-31",
        },
        headers=headers,
    ).json()
    assert template["next_due_date"] == "2024-01-31"

    pending = client.get(
        "/api/recurring/pending", params={"today": "2024-02-01"}, headers=headers
    ).json()
    assert [t["id"] for t in pending] == [template["id"]]

    confirmed = client.post(
        f"/api/recurring/{template['id']}/confirm",
        json={"expected_due_date": "2024-01-31"},
        headers=headers,
    )
    assert confirmed.status_code == 201
    assert confirmed.json()["date"] == "2024-01-31"
    assert confirmed.json()["recurring_expense_id"] == template["id"]

    replay = client.post(
        f"/api/recurring/{template['id']}/confirm",
        json={"expected_due_date": "2024-01-31"},
        headers=headers,
    )
    assert replay.status_code == 409

    skipped = client.post(f"/api/recurring/{template['id']}/skip", headers=headers)
    assert skipped.json()["next_due_date"] == "2024-03-29"

    paused = client.post(
        f"/api/recurring/{template['id']}/toggle", json={}, headers=headers
    )
    assert paused.json()["is_active"] is False
    assert paused.json()["next_due_date"] == "2024-03-29"
    rejected = client.post(f"/api/recurring/{template['id']}/confirm", headers=headers)
    assert rejected.status_code == 400

    occurrences = client.get(
        f"/api/recurring/{template['id']}/occurrences", headers=headers
    ).json()
    assert [e["date"] for e in occurrences] == ["2024-01-31"]


def test_monthly_report(client):
    headers = _headers(client)
    categories, methods = _reference_ids(client, headers)
    for category, cents, spender in (
        ("Dining", 1000, "Alex"),
        ("Dining", 500, "Sam"),
        ("Transport", 2000, "Sam"),
    ):
        client.post(
            "/api/expenses",
            json={
                "category_id": categories[category],
                "amount_cents": cents,
                "date": "2024-02-10",
                "spender": spender,
                "payment_method_id": methods["cash"],
            },
            headers=headers,
        )

    report = client.get(
        "/api/reports/monthly", params={"month": 2, "year": 2024}, headers=headers
    ).json()
    assert report["total_cents"] == 3500
    assert report["count"] == 3
    assert [
        (c["name"], c["total_cents"]) for c in report["category_breakdown"]
    ] == [("Transport", 2000), ("Dining", 1500)]
    assert report["spender_breakdown"][0]["name"] == "Sam"

    other_user = client.get(
        "/api/reports/monthly",
        params={"month": 2, "year": 2024},
        headers={"X-User-Id": "u2"},
    ).json()
    assert other_user["total_cents"] == 0

    bad = client.get(
        "/api/reports/monthly", params={"month": 13, "year": 2024}, headers=headers
    )
    assert bad.status_code == 400


def test_range_report_validates_custom_period(client):
    headers = {"X-User-Id": "u1"}
    response = client.get(
        "/api/reports/range",
        params={"period": "custom", "start": "2024-03-10", "end": "2024-03-01"},
        headers=headers,
    )
    assert response.status_code == 400

    ok = client.get(
        "/api/reports/range",
        params={"period": "custom", "start": "2024-03-01", "end": "2024-03-10"},
        headers=headers,
    )
    assert ok.status_code == 200
    assert ok.json()["count"] == 0


def test_report_superseded_while_running_is_discarded(client, monkeypatch):
    headers = {"X-User-Id": "u1"}
    original = main.ReportService.fetch_monthly_summary

    def slow_fetch(self, month, year):
        # a newer fetch for the same view starts before this one returns
        main.report_guard.begin("u1", "monthly", 6, "tab-a")
        return original(self, month, year)

    monkeypatch.setattr(main.ReportService, "fetch_monthly_summary", slow_fetch)
    older = client.get(
        "/api/reports/monthly",
        params={"month": 2, "year": 2024, "seq": 5, "client": "tab-a"},
        headers=headers,
    )
    assert older.status_code == 409


def test_report_counters_are_independent_between_clients(client):
    headers = {"X-User-Id": "u1"}
    params = {"month": 2, "year": 2024}

    first = client.get(
        "/api/reports/monthly",
        params={**params, "seq": 50, "client": "tab-a"},
        headers=headers,
    )
    assert first.status_code == 200

    other_tab = client.get(
        "/api/reports/monthly",
        params={**params, "seq": 1, "client": "tab-b"},
        headers=headers,
    )
    assert other_tab.status_code == 200

    reloaded = client.get(
        "/api/reports/monthly", params={**params, "seq": 1}, headers=headers
    )
    assert reloaded.status_code == 200

    other_view = client.get(
        "/api/reports/category-trend", params={"seq": 1}, headers=headers
    )
    assert other_view.status_code == 200
    assert len(main.report_guard) == 0


def test_latest_request_guard():
    guard = main.LatestRequestGuard()
    guard.begin("u1", "monthly", 1)
    guard.begin("u1", "monthly", 2)
    assert not guard.is_current("u1", "monthly", 1)
    assert guard.is_current("u1", "monthly", 2)
    assert guard.is_current("u2", "monthly", 1)
    assert guard.is_current("u1", "range", 1)
    assert guard.is_current("u1", "monthly", 1, client="tab-b")

    guard.finish("u1", "monthly", 1)
    assert guard.is_current("u1", "monthly", 2)
    guard.finish("u1", "monthly", 2)
    assert len(guard) == 0


def test_latest_request_guard_accepts_restarted_counter_once_idle():
    guard = main.LatestRequestGuard()
    guard.begin("u1", "monthly", 50)
    guard.finish("u1", "monthly", 50)

    guard.begin("u1", "monthly", 1)
    assert guard.is_current("u1", "monthly", 1)
    guard.begin("u1", "monthly", 2)
    assert not guard.is_current("u1", "monthly", 1)


def test_latest_request_guard_rejects_late_arriving_older_request():
    guard = main.LatestRequestGuard()
    guard.begin("u1", "monthly", 3)
    guard.begin("u1", "monthly", 2)
    assert not guard.is_current("u1", "monthly", 2)
    assert guard.is_current("u1", "monthly", 3)


def test_dashboard_shape(client):
    response = client.get("/api/dashboard", headers={"X-User-Id": "u1"})
    assert response.status_code == 200
    body = response.json()
    assert body["total_cents"] == 0
    assert body["recent_expenses"] == []
    assert body["daily_spending"] == []


def test_csrf_token_is_bound_to_user_and_expires():
    token = main.generate_csrf_token("u1")
    assert main.validate_csrf_token(token, "u1")
    assert not main.validate_csrf_token(token, "u2")
    assert not main.validate_csrf_token(token, "u1", max_age=-1)
    assert not main.validate_csrf_token(token + "x", "u1")
    assert not main.validate_csrf_token("", "u1")
