"""
Locust Load Test Suite

Tokens are minted locally with the service's SECRET_KEY, so point the run at a
database seeded with the listed profiles and some future bookings.

Run scenarios:
  locust -f locustfile.py --tags quote      # Fee preview reads (policy cache)
  locust -f locustfile.py --tags contention # Many cancels of one booking
  locust -f locustfile.py --tags edge       # Bad input
  locust -f locustfile.py                   # All tests

Environment:
  LOAD_CUSTOMER_IDS   comma separated profile ids owning bookings
  LOAD_CONTENDED_ID   booking id all contention users try to cancel
"""

import os
import random
import uuid
from locust import HttpUser, task, between, tag, events

from studio_booking.core.security import ROLE_CUSTOMER, create_access_token

CUSTOMER_IDS = [i for i in os.environ.get("LOAD_CUSTOMER_IDS", "").split(",") if i]
CONTENDED_BOOKING_ID = os.environ.get("LOAD_CONTENDED_ID", "")


def customer_headers(profile_id: str) -> dict:
    token = create_access_token({"sub": profile_id, "role": ROLE_CUSTOMER})
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"SETUP: {len(CUSTOMER_IDS)} customers, contended booking: {CONTENDED_BOOKING_ID or '-'}")
    print("=" * 60)


class QuoteUser(HttpUser):
    """
    TEST 1: Cancellation quotes - policy cache effectiveness

    Run twice (with and without Redis) and compare P95 latency:
      locust -f locustfile.py --tags quote -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = customer_headers(random.choice(CUSTOMER_IDS)) if CUSTOMER_IDS else {}
        self.booking_ids = []
        if self.headers:
            resp = self.client.get("/api/v1/bookings/", headers=self.headers)
            if resp.status_code == 200:
                self.booking_ids = [b["id"] for b in resp.json() if b["status"] in ("pending", "confirmed", "paid")]

    @tag("quote", "read")
    @task(10)
    def quote(self):
        if not self.booking_ids:
            return
        self.client.get(
            f"/api/v1/bookings/{random.choice(self.booking_ids)}/cancellation-quote",
            headers=self.headers,
            name="/api/v1/bookings/{id}/cancellation-quote",
        )

    @tag("quote", "read")
    @task(3)
    def policy(self):
        self.client.get("/api/v1/settings/cancellation-policy")

    @tag("quote")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class ContentionUser(HttpUser):
    """
    TEST 2: Contention - every user cancels the same booking

    Run: locust -f locustfile.py --tags contention -u 50 -r 50 --run-time 20s

    After test, verify exactly one storno / fee invoice was issued:
      SELECT status, version, storno_invoice_number FROM bookings WHERE id = X;
    The winner gets 200, everyone else 400 (already cancelled) or 409 (locked).
    """
    wait_time = between(0, 0.1)

    @tag("contention")
    @task
    def cancel_contended(self):
        if not CONTENDED_BOOKING_ID or not CUSTOMER_IDS:
            return
        with self.client.post(
            f"/api/v1/bookings/{CONTENDED_BOOKING_ID}/cancel",
            json={"reason": "load test"},
            headers=customer_headers(CUSTOMER_IDS[0]),
            name="/api/v1/bookings/{id}/cancel [contended]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 400, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = customer_headers(random.choice(CUSTOMER_IDS)) if CUSTOMER_IDS else customer_headers(str(uuid.uuid4()))

    @tag("edge")
    @task
    def unknown_booking(self):
        with self.client.post(
            f"/api/v1/bookings/{uuid.uuid4()}/cancel",
            json={},
            headers=self.headers,
            name="/api/v1/bookings/{id}/cancel [unknown]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            f"/api/v1/bookings/{uuid.uuid4()}/cancel",
            data="not json at all",
            headers=self.headers,
            name="/api/v1/bookings/{id}/cancel [malformed]",
            catch_response=True,
        ) as resp:
            if resp.status_code in [400, 404, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/404/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.get(
            f"/api/v1/bookings/{uuid.uuid4()}/cancellation-quote",
            name="/api/v1/bookings/{id}/cancellation-quote [no auth]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")

    @tag("edge")
    @task
    def customer_hits_admin(self):
        with self.client.post(
            f"/api/v1/admin/bookings/{uuid.uuid4()}/status",
            json={"status": "confirmed"},
            headers=self.headers,
            name="/api/v1/admin/bookings/{id}/status [customer]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 403:
                resp.success()
            else:
                resp.failure(f"Expected 403, got {resp.status_code}")
