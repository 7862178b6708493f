"""
Fakturo - API Tests

End-to-end tests through the FastAPI application with an in-memory
database, a fixed clock and a mocked rate provider.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4


TODAY = date(2026, 3, 16)

ITEMS = [
    {"description": "Development", "quantity": 3, "unit_price": 100, "vat_rate": 8.1},
    {"name": "Travel", "qty": 1, "price": 50, "vat": 0},
]


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        response = await client.get("/api/v1/invoices")
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_malformed_user_header(self, client):
        response = await client.get("/api/v1/invoices", headers={"X-User-ID": "nobody"})
        assert response.status_code == 401


class TestInvoiceEndpoints:

    @pytest.mark.asyncio
    async def test_calculate_preview(self, client, auth_headers):
        response = await client.post(
            "/api/v1/invoices/calculate",
            json={"items": ITEMS, "discount_percent": 10, "currency": "usd"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["subtotal"]) == Decimal("315.00")
        assert Decimal(data["vat_amount"]) == Decimal("24.30")
        assert Decimal(data["total"]) == Decimal("339.30")
        assert Decimal(data["amount_in_account_currency"]) == Decimal("312.16")
        assert data["account_currency"] == "CHF"
        assert data["is_converted"] is True
        assert len(data["vat_breakdown"]) == 2

        listing = await client.get("/api/v1/invoices", headers=auth_headers)
        assert listing.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_calculate_without_valid_item(self, client, auth_headers):
        response = await client.post(
            "/api/v1/invoices/calculate",
            json={"items": [{"description": "Empty", "quantity": 0, "unit_price": 10}]},
            headers=auth_headers,
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_INPUT"
        assert detail["field"] == "items"

    @pytest.mark.asyncio
    async def test_negative_quantity_names_the_item(self, client, auth_headers):
        items = ITEMS + [{"description": "Refund", "quantity": -1, "unit_price": 10}]
        response = await client.post("/api/v1/invoices/calculate", json={"items": items}, headers=auth_headers)

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "items[2].quantity"

    @pytest.mark.asyncio
    async def test_create_get_and_list(self, client, auth_headers):
        response = await client.post(
            "/api/v1/invoices",
            json={
                "items": ITEMS,
                "currency": "USD",
                "due_date": (TODAY + timedelta(days=30)).isoformat(),
            },
            headers=auth_headers,
        )

        assert response.status_code == 201
        created = response.json()
        assert created["invoice_number"] == "1"
        assert Decimal(created["total"]) == Decimal("374.30")
        assert Decimal(created["exchange_rate"]) == Decimal("0.92")
        assert Decimal(created["amount_in_account_currency"]) == Decimal("344.36")
        assert created["effective_status"] == "issued"
        assert created["status_label"] == "pending"
        assert created["days_until_due"] == 30
        assert Decimal(created["items"][1]["total"]) == Decimal("50.00")

        fetched = await client.get(f"/api/v1/invoices/{created['id']}", headers=auth_headers)
        assert fetched.status_code == 200
        assert fetched.json()["id"] == created["id"]

        listing = await client.get("/api/v1/invoices", headers=auth_headers)
        assert listing.json()["total"] == 1

        other = await client.get(f"/api/v1/invoices/{created['id']}", headers={"X-User-ID": str(uuid4())})
        assert other.status_code == 404
        assert other.json()["detail"]["code"] == "INVOICE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_provider_down_still_creates(self, client, auth_headers, rate_provider):
        rate_provider.set_status(500)

        response = await client.post(
            "/api/v1/invoices",
            json={"items": ITEMS, "currency": "USD"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["amount_in_account_currency"] is None

    @pytest.mark.asyncio
    async def test_due_date_before_issue_date(self, client, auth_headers):
        response = await client.post(
            "/api/v1/invoices",
            json={"items": ITEMS, "issue_date": "2026-03-10", "due_date": "2026-03-01"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_overdue_is_derived(self, client, auth_headers):
        response = await client.post(
            "/api/v1/invoices",
            json={"items": ITEMS, "issue_date": "2026-02-01", "due_date": "2026-03-01"},
            headers=auth_headers,
        )
        invoice = response.json()

        assert invoice["status"] == "issued"
        assert invoice["effective_status"] == "overdue"
        assert invoice["is_overdue"] is True
        assert invoice["days_until_due"] == -15

        overdue = await client.get("/api/v1/invoices", params={"status": "overdue"}, headers=auth_headers)
        assert overdue.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_update_and_status(self, client, auth_headers):
        created = (await client.post("/api/v1/invoices", json={"items": ITEMS}, headers=auth_headers)).json()

        updated = await client.patch(
            f"/api/v1/invoices/{created['id']}",
            json={"discount_percent": 10},
            headers=auth_headers,
        )
        assert Decimal(updated.json()["total"]) == Decimal("339.30")

        paid = await client.post(
            f"/api/v1/invoices/{created['id']}/status",
            json={"status": "paid"},
            headers=auth_headers,
        )
        assert paid.json()["status"] == "paid"
        assert paid.json()["paid_date"] == TODAY.isoformat()

        overdue = await client.post(
            f"/api/v1/invoices/{created['id']}/status",
            json={"status": "overdue"},
            headers=auth_headers,
        )
        assert overdue.status_code == 422

    @pytest.mark.asyncio
    async def test_duplicate(self, client, auth_headers):
        created = (await client.post("/api/v1/invoices", json={"items": ITEMS}, headers=auth_headers)).json()

        response = await client.post(f"/api/v1/invoices/{created['id']}/duplicate", headers=auth_headers)

        assert response.status_code == 201
        assert response.json()["invoice_number"] == "2"
        assert response.json()["total"] == created["total"]

    @pytest.mark.asyncio
    async def test_revenue_summary(self, client, auth_headers):
        await client.post("/api/v1/invoices", json={"items": ITEMS}, headers=auth_headers)

        response = await client.get("/api/v1/invoices/summary", params={"year": 2026}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["year"] == 2026
        assert Decimal(data["total_invoiced"]) == Decimal("374.30")
        assert len(data["monthly"]) == 12


class TestTimeEntryEndpoints:

    @pytest.mark.asyncio
    async def test_invoice_time_entries(self, client, auth_headers, project_id):
        entry_ids = []
        for minutes, note in ((90, "Workshop"), (30, "Notes")):
            response = await client.post(
                "/api/v1/time-entries",
                json={
                    "project_id": str(project_id),
                    "entry_date": "2026-03-02",
                    "duration_minutes": minutes,
                    "hourly_rate": 120,
                    "description": note,
                },
                headers=auth_headers,
            )
            assert response.status_code == 201
            entry_ids.append(response.json()["id"])

        summary = await client.post(
            "/api/v1/time-entries/summary", json={"entry_ids": entry_ids}, headers=auth_headers
        )
        assert summary.status_code == 200
        assert Decimal(summary.json()["total_hours"]) == Decimal("2.00")
        assert Decimal(summary.json()["total_amount"]) == Decimal("240.00")

        response = await client.post(
            "/api/v1/invoices/from-time-entries",
            json={"entry_ids": entry_ids, "vat_rate": 8.1},
            headers=auth_headers,
        )
        assert response.status_code == 201
        invoice = response.json()
        assert Decimal(invoice["total"]) == Decimal("259.44")
        assert invoice["project_id"] == str(project_id)
        assert sorted(invoice["source_time_entry_ids"]) == sorted(entry_ids)

        entries = await client.get("/api/v1/time-entries", params={"status": "invoiced"}, headers=auth_headers)
        assert entries.json()["total"] == 2
        assert entries.json()["total_minutes"] == 120

        again = await client.post(
            "/api/v1/invoices/from-time-entries",
            json={"entry_ids": entry_ids},
            headers=auth_headers,
        )
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "ALREADY_INVOICED"

        locked = await client.patch(
            f"/api/v1/time-entries/{entry_ids[0]}",
            json={"duration_minutes": 10},
            headers=auth_headers,
        )
        assert locked.status_code == 422
        assert locked.json()["detail"]["code"] == "CANNOT_MODIFY"

        reconcile = await client.post(
            f"/api/v1/invoices/{invoice['id']}/reconcile-time-entries", headers=auth_headers
        )
        assert reconcile.json()["updated_entry_ids"] == []
        assert reconcile.json()["already_invoiced"] == 2

    @pytest.mark.asyncio
    async def test_empty_selection(self, client, auth_headers):
        response = await client.post(
            "/api/v1/invoices/from-time-entries", json={"entry_ids": []}, headers=auth_headers
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "EMPTY_BATCH"

        summary = await client.post("/api/v1/time-entries/summary", json={"entry_ids": []}, headers=auth_headers)
        assert summary.json()["detail"]["code"] == "EMPTY_BATCH"

    @pytest.mark.asyncio
    async def test_timer(self, client, auth_headers, clock, project_id):
        started = await client.post(
            "/api/v1/time-entries/timer/start",
            json={"project_id": str(project_id), "hourly_rate": 100},
            headers=auth_headers,
        )
        assert started.status_code == 201
        entry = started.json()
        assert entry["is_running"] is True

        running = await client.get("/api/v1/time-entries/running", headers=auth_headers)
        assert running.json()["id"] == entry["id"]

        clock.advance(clock.now() + timedelta(minutes=25))
        stopped = await client.post(f"/api/v1/time-entries/{entry['id']}/stop", headers=auth_headers)
        assert stopped.json()["duration_minutes"] == 25

        running = await client.get("/api/v1/time-entries/running", headers=auth_headers)
        assert running.json() is None

    @pytest.mark.asyncio
    async def test_delete_unbilled(self, client, auth_headers, project_id):
        created = await client.post(
            "/api/v1/time-entries",
            json={"project_id": str(project_id), "entry_date": "2026-03-02", "duration_minutes": 15},
            headers=auth_headers,
        )
        entry_id = created.json()["id"]

        response = await client.delete(f"/api/v1/time-entries/{entry_id}", headers=auth_headers)
        assert response.status_code == 204

        missing = await client.get(f"/api/v1/time-entries/{entry_id}", headers=auth_headers)
        assert missing.status_code == 404


class TestFxEndpoints:

    @pytest.mark.asyncio
    async def test_get_rate(self, client, auth_headers, rate_provider):
        response = await client.get(
            "/api/v1/fx/rates/USD/CHF", params={"as_of": "2026-03-13"}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["rate"]) == Decimal("0.92")
        assert data["as_of"] == "2026-03-13"
        assert data["source"] == "frankfurter"

        # Second lookup is served from the stored rate
        await client.get("/api/v1/fx/rates/USD/CHF", params={"as_of": "2026-03-13"}, headers=auth_headers)
        assert len(rate_provider.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_unavailable(self, client, auth_headers):
        response = await client.get("/api/v1/fx/rates/XAU/CHF", headers=auth_headers)

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "CONVERSION_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_manual_rate_and_convert(self, client, auth_headers, rate_provider):
        recorded = await client.post(
            "/api/v1/fx/rates",
            json={"from_currency": "gbp", "to_currency": "chf", "rate": 1.12, "rate_date": "2026-03-16"},
            headers=auth_headers,
        )
        assert recorded.status_code == 201
        assert recorded.json()["from_currency"] == "GBP"

        converted = await client.post(
            "/api/v1/fx/convert",
            json={"amount": 100, "from_currency": "GBP", "to_currency": "CHF"},
            headers=auth_headers,
        )
        assert converted.status_code == 200
        assert Decimal(converted.json()["converted_amount"]) == Decimal("112.00")
        assert rate_provider.requests == []


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["cache"] == "disabled"
