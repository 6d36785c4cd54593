"""Tests for the workspace API in smart_invoice/routes/main.py and the checkout route."""

from __future__ import annotations

from conftest import COMPANY_A, COMPANY_B, auth_headers, checkout_session, make_client, make_job, make_profile
from smart_invoice.extensions import db
from smart_invoice.models import Client, Job, JobFrequency


class TestHealthAndHeaders:
    def test_health(self, app, client) -> None:
        response = client.get("/health")

        assert response.get_json() == {"status": "ok"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_cors_headers_for_allowed_origin(self, app, client) -> None:
        response = client.get("/health", headers={"Origin": "https://app.example.test"})

        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "Authorization" in response.headers["Access-Control-Allow-Headers"]

    def test_unknown_route_is_json(self, app, client) -> None:
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.get_json()["success"] is False


class TestClients:
    def test_create_and_list_scoped_to_company(self, app, client) -> None:
        make_profile()
        make_client(company_id=COMPANY_B, name="Other Co")

        created = client.post(
            "/api/clients", json={"name": "Acme Co", "email": "billing@acme.test"}, headers=auth_headers()
        )
        listing = client.get("/api/clients", headers=auth_headers()).get_json()

        assert created.status_code == 201
        assert [item["name"] for item in listing["clients"]] == ["Acme Co"]

    def test_create_requires_name(self, app, client) -> None:
        make_profile()

        response = client.post("/api/clients", json={"email": "x@example.com"}, headers=auth_headers())

        assert response.status_code == 400
        assert response.get_json() == {"success": False, "error": "name is required"}

    def test_update_other_company_client_is_not_found(self, app, client) -> None:
        make_profile()
        other = make_client(company_id=COMPANY_B)

        response = client.patch(f"/api/clients/{other.id}", json={"name": "Hijack"}, headers=auth_headers())

        assert response.status_code == 404
        assert db.session.get(Client, other.id).name == "Acme Co"

    def test_delete_client_with_jobs_conflicts(self, app, client) -> None:
        make_profile()
        acme = make_client()
        make_job(acme)

        response = client.delete(f"/api/clients/{acme.id}", headers=auth_headers())

        assert response.status_code == 409

    def test_delete_client(self, app, client) -> None:
        make_profile()
        acme = make_client()

        response = client.delete(f"/api/clients/{acme.id}", headers=auth_headers())

        assert response.status_code == 200
        assert Client.query.count() == 0


class TestJobs:
    def _payload(self, client_id: str, **overrides) -> dict:
        payload = {"client_id": client_id, "title": "Lawn care", "price": "100.00", "scheduled_date": "2024-05-01"}
        payload.update(overrides)
        return payload

    def test_create_job(self, app, client) -> None:
        make_profile()
        acme = make_client()

        response = client.post("/api/jobs", json=self._payload(acme.id), headers=auth_headers())

        body = response.get_json()
        assert response.status_code == 201
        assert body["job"]["price"] == "100.00"
        assert body["job"]["status"] == "pending"
        assert body["job"]["client_name"] == "Acme Co"
        assert body["job"]["frequency"] is None

    def test_price_must_be_positive(self, app, client) -> None:
        make_profile()
        acme = make_client()

        for price in ("0", "-3", "abc", None):
            response = client.post("/api/jobs", json=self._payload(acme.id, price=price), headers=auth_headers())
            assert response.status_code == 400

    def test_recurring_requires_frequency(self, app, client) -> None:
        make_profile()
        acme = make_client()

        response = client.post("/api/jobs", json=self._payload(acme.id, is_recurring=True), headers=auth_headers())

        assert response.status_code == 400
        assert response.get_json()["error"] == "frequency is required for recurring jobs"

    def test_frequency_dropped_for_one_off_jobs(self, app, client) -> None:
        make_profile()
        acme = make_client()

        body = client.post(
            "/api/jobs", json=self._payload(acme.id, frequency="monthly"), headers=auth_headers()
        ).get_json()

        assert body["job"]["is_recurring"] is False
        assert body["job"]["frequency"] is None

    def test_recurring_job(self, app, client) -> None:
        make_profile()
        acme = make_client()

        body = client.post(
            "/api/jobs", json=self._payload(acme.id, is_recurring=True, frequency="bi-weekly"), headers=auth_headers()
        ).get_json()

        assert db.session.get(Job, body["job"]["id"]).frequency == JobFrequency.BI_WEEKLY

    def test_client_from_other_company_is_rejected(self, app, client) -> None:
        make_profile()
        other = make_client(company_id=COMPANY_B)

        response = client.post("/api/jobs", json=self._payload(other.id), headers=auth_headers())

        assert response.status_code == 400
        assert response.get_json()["error"] == "Client not found"

    def test_price_change_discards_stale_link(self, app, client) -> None:
        make_profile()
        job = make_job(
            make_client(), "100.00", payment_url="https://checkout.stripe.test/old", checkout_session_id="cs_old",
            payment_base_cents=10_000, payment_fee_cents=420,
        )

        response = client.patch(f"/api/jobs/{job.id}", json={"price": "120.00"}, headers=auth_headers())

        assert response.status_code == 200
        stored = db.session.get(Job, job.id)
        assert stored.payment_url is None
        assert stored.payment_base_cents is None
        assert str(stored.price) == "120.00"

    def test_list_filters_by_status(self, app, client) -> None:
        make_profile()
        acme = make_client()
        make_job(acme, title="Open")
        make_job(make_client(company_id=COMPANY_B), title="Foreign")

        body = client.get("/api/jobs?status=pending", headers=auth_headers()).get_json()

        assert [job["title"] for job in body["jobs"]] == ["Open"]
        assert client.get("/api/jobs?status=bogus", headers=auth_headers()).status_code == 400

    def test_delete_job(self, app, client) -> None:
        make_profile()
        job = make_job(make_client())

        assert client.delete(f"/api/jobs/{job.id}", headers=auth_headers()).status_code == 200
        assert Job.query.count() == 0


class TestCheckoutRoute:
    """Verify the HTTP contract of POST /api/checkout."""

    def test_creates_link_for_own_job(self, app, client, fake_stripe) -> None:
        make_profile()
        job = make_job(make_client())
        fake_stripe.checkout.Session.create.return_value = checkout_session("cs_route")

        response = client.post(
            "/api/checkout", json={"jobId": job.id}, headers={**auth_headers(), "Origin": "https://app.example.test"}
        )

        body = response.get_json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["sessionId"] == "cs_route"
        assert body["routing_info"]["method"] == "platform_only"
        params = fake_stripe.checkout.Session.create.call_args.kwargs
        assert params["cancel_url"] == "https://app.example.test/"

    def test_unknown_job_is_reported_in_body(self, app, client, fake_stripe) -> None:
        make_profile()

        response = client.post("/api/checkout", json={"jobId": "nope"}, headers=auth_headers())

        assert response.status_code == 200
        assert response.get_json() == {"success": False, "error": "Job not found"}

    def test_missing_job_id(self, app, client, fake_stripe) -> None:
        make_profile()

        response = client.post("/api/checkout", json={}, headers=auth_headers())

        assert response.get_json() == {"success": False, "error": "Job ID is required"}

    def test_requires_token(self, app, client, fake_stripe) -> None:
        job = make_job(make_client(company_id=COMPANY_A))

        response = client.post("/api/checkout", json={"jobId": job.id})

        assert response.status_code == 401
        fake_stripe.checkout.Session.create.assert_not_called()
