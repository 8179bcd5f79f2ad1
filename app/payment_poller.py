# app/payment_poller.py
"""
Client side of the QR payment flow.

After showing the QR code the client polls the payment status endpoint on a
fixed interval while a countdown runs. The poll ends with one of three
outcomes: the transfer was seen (``paid``), the server marked it failed or
the countdown ran out (``failed``), or the user left the screen
(``stopped``). A failed payment can be retried, which opens a new window.
"""

import logging
import math
import time
from typing import Callable, Optional

import requests

from app.config import API_URL, PAYMENT_POLL_INTERVAL_SECONDS, PAYMENT_TIMEOUT_MINUTES

logger = logging.getLogger(__name__)

PAID = "paid"
FAILED = "failed"
STOPPED = "stopped"

FAILED_STATUSES = ("FAILED", "REFUNDED")


class PaymentsClient:
    """Thin wrapper over the /payments endpoints."""

    def __init__(self, base_url: str = API_URL, token: Optional[str] = None,
                 timeout: float = 5, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, **kwargs) -> dict:
        response = self.session.request(
            method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs
        )
        response.raise_for_status()
        return response.json()

    def create_qr(self, booking_id: int) -> dict:
        return self._request("POST", "/payments/create-qr", json={"booking_id": booking_id})

    def get_status(self, booking_id: int) -> dict:
        return self._request("GET", f"/payments/{booking_id}/status")

    def retry(self, payment_id: int) -> dict:
        return self._request("POST", f"/payments/{payment_id}/retry")


class PaymentStatusPoller:
    def __init__(
        self,
        fetch_status: Callable[[], dict],
        interval: float = PAYMENT_POLL_INTERVAL_SECONDS,
        timeout: float = PAYMENT_TIMEOUT_MINUTES * 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_tick: Optional[Callable[[int], None]] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.fetch_status = fetch_status
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.sleep = sleep
        self.on_tick = on_tick
        self.last_status: Optional[dict] = None
        self._deadline: Optional[float] = None
        self._stopped = False

    def stop(self):
        self._stopped = True

    def seconds_left(self) -> int:
        """Whole seconds on the countdown; the full timeout before polling starts."""
        if self._deadline is None:
            return int(math.ceil(self.timeout))
        return max(0, int(math.ceil(self._deadline - self.clock())))

    def poll(self) -> str:
        self._stopped = False
        self._deadline = self.clock() + self.timeout

        while True:
            if self._stopped:
                logger.info("Payment polling stopped")
                return STOPPED

            try:
                state = self.fetch_status()
            except (requests.RequestException, ValueError, KeyError) as exc:
                # keep polling until the countdown decides
                logger.warning("Payment status check failed: %s", exc)
            else:
                self.last_status = state
                status = state.get("status")
                if status == "PAID":
                    logger.info("Payment confirmed")
                    return PAID
                if status in FAILED_STATUSES:
                    logger.info("Payment reported %s by server", status)
                    return FAILED

            remaining = self.seconds_left()
            if self.on_tick is not None:
                self.on_tick(remaining)
            if remaining <= 0:
                logger.info("Payment window timed out")
                return FAILED
            if self._stopped:
                continue

            self.sleep(min(self.interval, remaining))


def wait_for_payment(client: PaymentsClient, booking_id: int, **kwargs) -> str:
    """Poll the booking's payment until it settles; returns the outcome."""
    poller = PaymentStatusPoller(lambda: client.get_status(booking_id), **kwargs)
    return poller.poll()
