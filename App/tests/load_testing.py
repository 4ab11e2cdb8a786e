"""
Load testing for the coverage scheduler.

Volunteers race for the same published shifts while coordinators read the
week grid and schedule. Run against a seeded database (``flask init``):

    locust -f App/tests/load_testing.py --host http://localhost:8080
"""
import random
from datetime import date

from locust import HttpUser, between, task

VOLUNTEERS = ['dana', 'eli', 'fran', 'gabe']


def _login(client, username, password):
    response = client.post("/api/v2/auth/login", json={"username": username, "password": password})
    if response.status_code == 200:
        token = response.json()['data']['token']
        return {'Authorization': f'Bearer {token}'}
    return {}


class VolunteerLoadTest(HttpUser):
    """Volunteers claiming and releasing positions on the same shifts."""
    wait_time = between(1, 3)

    def on_start(self):
        username = random.choice(VOLUNTEERS)
        self.headers = _login(self.client, username, f'{username}pass')
        self.shift_ids = []
        today = date.today().isoformat()
        response = self.client.get(
            f"/api/v2/shifts?start_date={today}&end_date={today}&status=PUBLISHED",
            headers=self.headers, name="/api/v2/shifts",
        )
        if response.status_code == 200:
            self.shift_ids = [shift['id'] for shift in response.json()['data']]

    @task(3)
    def view_week(self):
        self.client.get("/api/v2/coverage/week", headers=self.headers)

    @task(2)
    def claim_position(self):
        if not self.shift_ids:
            return
        shift_id = random.choice(self.shift_ids)
        with self.client.post(f"/api/v2/shifts/{shift_id}/signups",
                              json={"role_type": "VERIFIER"},
                              headers=self.headers,
                              name="/api/v2/shifts/[id]/signups",
                              catch_response=True) as response:
            # Losing the race is an expected business outcome
            if response.status_code in (201, 400, 403, 409):
                response.success()
            else:
                response.failure(f"Unexpected status code: {response.status_code}")

    @task(1)
    def release_position(self):
        response = self.client.get("/api/v2/signups/mine", headers=self.headers)
        if response.status_code != 200:
            return
        active = [s for s in response.json()['data'] if s['status'] in ('PENDING', 'CONFIRMED')]
        if active:
            signup = random.choice(active)
            self.client.delete(f"/api/v2/signups/{signup['id']}", headers=self.headers,
                               name="/api/v2/signups/[id]")


class CoordinatorLoadTest(HttpUser):
    """Coordinators reading the assignment grid."""
    wait_time = between(2, 5)

    def on_start(self):
        self.headers = _login(self.client, 'coord', 'coordpass')

    @task(2)
    def view_schedule(self):
        today = date.today().isoformat()
        self.client.get(f"/api/v2/schedule?start_date={today}&end_date={today}",
                        headers=self.headers, name="/api/v2/schedule")

    @task(1)
    def view_metrics(self):
        self.client.get("/api/v2/admin/performance/metrics", headers=self.headers)


class PerformanceBenchmarks:
    """Targets for a run against the demo data set."""

    RESPONSE_TIME_TARGETS = {
        'coverage_week': 500,      # ms
        'schedule_grid': 800,
        'signup_write': 300,
    }

    ERROR_RATE_TARGETS = {
        'max_error_rate': 0.05,
    }
