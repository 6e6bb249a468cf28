"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Capacity and stock races
  locust -f locustfile.py --tags throughput   # Catalog cache
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Tokens are minted locally with the server's SECRET_KEY, so run with the same
environment as the API.
"""

import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

from eventrental.core.security import create_access_token

ORGANIZER_ID = 1
VENDOR_ID = 2
ADMIN_ID = 3

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
CONCURRENCY_EQUIPMENT_ID = None
EQUIPMENT_UNITS = 10
EVENT_CAPACITY = 10


def headers_for(user_id: int, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


def future_date(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: Creating concurrency test equipment and event...")
    print("=" * 60)


def ensure_concurrency_fixtures(client) -> None:
    """One approved equipment item and one small event everyone fights over."""
    global CONCURRENCY_EVENT_ID, CONCURRENCY_EQUIPMENT_ID
    if CONCURRENCY_EVENT_ID:
        return

    resp = client.post(
        "/api/v1/equipment/",
        json={"name": "Speaker", "unit_price": "25.00", "quantity": EQUIPMENT_UNITS + 1},
        headers=headers_for(VENDOR_ID, "vendor"),
    )
    if resp.status_code != 201:
        return
    equipment_id = resp.json()["id"]
    client.patch(
        f"/api/v1/equipment/{equipment_id}/status",
        json={"status": "approved"},
        headers=headers_for(ADMIN_ID, "admin"),
    )

    resp = client.post(
        "/api/v1/events/",
        json={
            "title": "Concurrency Test Event",
            "description": f"{EVENT_CAPACITY} seats only",
            "date": future_date(),
            "location": "Test",
            "capacity": EVENT_CAPACITY,
            "equipment": [{"equipment_id": equipment_id, "quantity": 1}],
        },
        headers=headers_for(ORGANIZER_ID),
    )
    if resp.status_code == 201 and not CONCURRENCY_EVENT_ID:
        CONCURRENCY_EQUIPMENT_ID = equipment_id
        CONCURRENCY_EVENT_ID = resp.json()["id"]
        print(f"\n✓ Created event {CONCURRENCY_EVENT_ID} with {EVENT_CAPACITY} seats\n")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users -> 10 seats, many events -> 10 speakers

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM registrations WHERE event_id = X AND status = 'confirmed';
    Should be <= 10, and for the speaker:
      SELECT quantity, rented_count FROM equipment WHERE id = Y;
    Both >= 0, summing to 11
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = random.randint(1000, 10_000_000)
        self.headers = headers_for(self.user_id)
        ensure_concurrency_fixtures(self.client)

    @tag("concurrency")
    @task(3)
    def register_for_limited_event(self):
        """Everyone fights for the same 10 seats; the rest are waitlisted."""
        if not CONCURRENCY_EVENT_ID:
            return

        with self.client.post(
            f"/api/v1/events/{CONCURRENCY_EVENT_ID}/registrations",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{id}/registrations",
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: already registered
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task(1)
    def rent_last_speakers(self):
        """Each task creates an event that wants one of the remaining speakers."""
        if not CONCURRENCY_EQUIPMENT_ID:
            return

        with self.client.post(
            "/api/v1/events/",
            json={
                "title": f"Speaker race {random.randint(1, 100000)}",
                "date": future_date(random.randint(1, 90)),
                "location": "Venue",
                "capacity": 50,
                "equipment": [{"equipment_id": CONCURRENCY_EQUIPMENT_ID, "quantity": 1}],
            },
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/ [speaker race]",
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409 and resp.json().get("error") == "insufficient_stock":
                resp.success()  # Expected: sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Catalog cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_catalog_cached(self):
        self.client.get("/api/v1/equipment/", name="/api/v1/equipment/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_event_summary(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}/summary", name="/api/v1/events/{id}/summary")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = headers_for(random.randint(1000, 10_000_000))

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def register_missing_event(self):
        with self.client.post(
            "/api/v1/events/999999/registrations",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{missing}/registrations",
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def negative_equipment_quantity(self):
        with self.client.post(
            "/api/v1/events/",
            json={
                "title": "Bad",
                "date": future_date(),
                "location": "Venue",
                "capacity": 10,
                "equipment": [{"equipment_id": 1, "quantity": -5}],
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def no_equipment(self):
        with self.client.post(
            "/api/v1/events/",
            json={"title": "Bare", "date": future_date(), "location": "Venue", "capacity": 10},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def huge_quantity(self):
        with self.client.post(
            "/api/v1/events/",
            json={
                "title": "Greedy",
                "date": future_date(),
                "location": "Venue",
                "capacity": 10,
                "equipment": [{"equipment_id": 1, "quantity": 999999}],
            },
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [404, 409])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/events/",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/events/1/registrations",
            catch_response=True,
            name="/api/v1/events/{id}/registrations [no auth]",
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing, some registrations and cancellations, rare event creation.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.user_id = random.randint(1000, 10_000_000)
        self.headers = headers_for(self.user_id)
        self.registration_ids = []
        ensure_concurrency_fixtures(self.client)
        if CONCURRENCY_EVENT_ID and CONCURRENCY_EVENT_ID not in EVENT_IDS:
            EVENT_IDS.append(CONCURRENCY_EVENT_ID)

    @task(50)
    def browse_catalog(self):
        self.client.get("/api/v1/equipment/")

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def register(self):
        if EVENT_IDS:
            resp = self.client.post(
                f"/api/v1/events/{random.choice(EVENT_IDS)}/registrations",
                headers=self.headers,
                name="/api/v1/events/{id}/registrations",
            )
            if resp.status_code == 201:
                self.registration_ids.append(resp.json()["id"])

    @task(5)
    def cancel(self):
        if self.registration_ids:
            registration_id = self.registration_ids.pop()
            self.client.delete(
                f"/api/v1/registrations/{registration_id}",
                headers=self.headers,
                name="/api/v1/registrations/{id}",
            )

    @task(3)
    def create_event(self):
        if not CONCURRENCY_EQUIPMENT_ID:
            return
        resp = self.client.post(
            "/api/v1/events/",
            json={
                "title": f"Event {random.randint(1, 10000)}",
                "description": "Test event",
                "date": future_date(random.randint(1, 90)),
                "location": "Venue",
                "capacity": random.randint(10, 500),
                "equipment": [{"equipment_id": CONCURRENCY_EQUIPMENT_ID, "quantity": 1}],
            },
            headers=self.headers,
        )
        if resp.status_code == 201:
            EVENT_IDS.append(resp.json()["id"])
