"""Shared user base and helpers for the car lease load tests."""

import hashlib
import hmac
import logging
import os
import time
from typing import Dict, Iterable, Optional, Union
from uuid import uuid4

from locust import HttpUser, between, events

logger = logging.getLogger(__name__)

LEASE_API_URL = os.getenv("LEASE_API_URL", "http://localhost:8000")

# Must match STRIPE_WEBHOOK_SECRET of the API under test
WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "whsec_load_test")

SLOW_REQUEST_MS = 500


class BaseLoadTestUser(HttpUser):
    """Simulated lease customer with its own identity headers."""

    abstract = True
    host = LEASE_API_URL
    wait_time = between(1, 5)

    def on_start(self):
        self.user_id = str(uuid4())
        self.test_data = {}

    @property
    def user_headers(self) -> Dict[str, str]:
        """Identity headers the upstream auth gateway would set."""
        return {
            "X-User-Id": self.user_id,
            "X-User-Email": f"load-{self.user_id[:8]}@example.com",
        }

    def make_request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict] = None,
        data: Optional[str] = None,
        headers: Optional[Dict] = None,
        name: Optional[str] = None,
        expected_status: Union[int, Iterable[int]] = 200,
    ):
        """Send a request and count it as failed unless its status is expected."""
        expected = {expected_status} if isinstance(expected_status, int) else set(expected_status)

        with self.client.request(
            method.upper(),
            path,
            json=json_data,
            data=data,
            headers=headers,
            name=name or path,
            timeout=10,
            catch_response=True,
        ) as response:
            if response.status_code in expected:
                response.success()
            else:
                response.failure(f"HTTP {response.status_code}")

            elapsed_ms = response.elapsed.total_seconds() * 1000
            if elapsed_ms > SLOW_REQUEST_MS:
                logger.warning(f"Slow request: {method.upper()} {name or path} took {elapsed_ms:.0f}ms")

        return response


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    """Stripe-Signature header value for payload."""
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    stats = environment.stats.total
    logger.info(
        f"Load test completed: {stats.num_requests} requests, "
        f"{stats.num_failures} failures, p95 {stats.get_response_time_percentile(0.95)}ms"
    )
