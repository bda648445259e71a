"""Locust load test: community browsing, posting and voting.

Mixes the traffic a community page actually sees: mostly list and detail
reads, the similar-thread lookup fired while a title is typed, and a small
share of writes (questions, answers, votes). Write bursts are expected to hit
the per-user write bucket; 429s are counted, not failed.

Validation checklist:
  1. Reader: list/detail p95 stays under 200ms at 50 users.
  2. Reader: no 5xx responses.
  3. Contributor: 429 responses carry a Retry-After header.
  4. Contributor: vote toggles never return 409 for a single user.

Run command:
    locust -f tests/load/locustfile_community.py \\
      --host http://localhost:8000 \\
      --users 50 --spawn-rate 10 --run-time 60s \\
      --headless --only-summary --csv=results/community

Prerequisites:
    1. Start stack and run migrations (alembic upgrade head)
    2. Seed: python -m fixtures.seed_fixtures
    3. mkdir -p results/
"""

import random

from locust import HttpUser, between, task

SEARCH_TERMS = ["aluminium pricing", "supplier risk", "freight", "steel contract", "procurement"]

TITLE_PREFIXES = [
    "How do you benchmark",
    "What is the best way to track",
    "Has anyone negotiated",
]


def _register(client, prefix: str, obj) -> dict:
    resp = client.post(
        "/api/auth/keys",
        json={"email": f"{prefix}-{id(obj)}@test.invalid", "displayName": f"{prefix} {id(obj)}"},
        name="/api/auth/keys",
    )
    if resp.status_code == 201:
        return {"X-API-Key": resp.json()["apiKey"]}
    return {}


class Reader(HttpUser):
    """Browses lists, opens threads, and runs the similar-thread lookup."""

    weight = 4
    wait_time = between(0.5, 2)

    def on_start(self) -> None:
        self.headers = _register(self.client, "reader", self)
        self.question_ids: list[str] = []

    @task(5)
    def list_questions(self) -> None:
        sort = random.choice(["newest", "active", "votes", "unanswered"])
        resp = self.client.get(
            "/api/community/questions",
            params={"sort": sort, "pageSize": 20},
            headers=self.headers,
            name="/api/community/questions",
        )
        if resp.status_code == 200:
            self.question_ids = [q["id"] for q in resp.json()["questions"]]

    @task(3)
    def open_question(self) -> None:
        if not self.question_ids:
            return
        question_id = random.choice(self.question_ids)
        self.client.get(
            f"/api/community/questions/{question_id}",
            headers=self.headers,
            name="/api/community/questions/{id}",
        )

    @task(2)
    def similar_threads(self) -> None:
        self.client.get(
            "/api/community/questions/similar",
            params={"q": random.choice(SEARCH_TERMS)},
            headers=self.headers,
            name="/api/community/questions/similar",
        )

    @task(1)
    def leaderboard(self) -> None:
        self.client.get(
            "/api/community/leaderboard",
            params={"period": random.choice(["week", "month", "all-time"])},
            headers=self.headers,
            name="/api/community/leaderboard",
        )


class Contributor(HttpUser):
    """Posts questions and answers and votes on other people's threads."""

    weight = 1
    wait_time = between(1, 3)

    def on_start(self) -> None:
        self.headers = _register(self.client, "contributor", self)
        self.others: list[str] = []

    def _expect_write(self, resp) -> None:
        if resp.status_code in (200, 201):
            resp.success()
        elif resp.status_code == 429:
            if resp.headers.get("Retry-After") is None:
                resp.failure("429 response missing Retry-After header")
            else:
                resp.success()
        else:
            resp.failure(f"Unexpected status {resp.status_code}")

    @task(3)
    def vote(self) -> None:
        if not self.others:
            resp = self.client.get(
                "/api/community/questions", headers=self.headers, name="/api/community/questions"
            )
            if resp.status_code != 200:
                return
            self.others = [q["id"] for q in resp.json()["questions"]]
            if not self.others:
                return
        with self.client.post(
            "/api/community/votes",
            json={
                "targetType": "question",
                "targetId": random.choice(self.others),
                "value": random.choice([1, 1, 1, -1, 0]),
            },
            headers=self.headers,
            catch_response=True,
            name="/api/community/votes",
        ) as resp:
            # Own questions come back 403; that is a valid outcome here
            if resp.status_code == 403:
                resp.success()
            else:
                self._expect_write(resp)

    @task(1)
    def ask(self) -> None:
        title = f"{random.choice(TITLE_PREFIXES)} {random.choice(SEARCH_TERMS)} {random.randint(1, 10**6)}"
        with self.client.post(
            "/api/community/questions",
            json={
                "title": title,
                "body": "Looking for practical approaches other buying teams have used this year.",
                "tagIds": [],
            },
            headers=self.headers,
            catch_response=True,
            name="/api/community/questions [post]",
        ) as resp:
            self._expect_write(resp)
