import pytest
import requests

from app.payment_poller import (
    PaymentStatusPoller,
    PaymentsClient,
    PAID,
    FAILED,
    STOPPED,
    wait_for_payment,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def statuses(*values):
    it = iter(values)

    def fetch():
        value = next(it)
        if isinstance(value, Exception):
            raise value
        return {"status": value}
    return fetch


def make_poller(fetch, clock, interval=3, timeout=15):
    return PaymentStatusPoller(fetch, interval=interval, timeout=timeout, clock=clock, sleep=clock.sleep)


def test_poll_until_paid():
    clock = FakeClock()
    poller = make_poller(statuses("PENDING", "PENDING", "PAID"), clock)

    assert poller.poll() == PAID
    assert clock.sleeps == [3, 3]
    assert poller.last_status == {"status": "PAID"}


def test_poll_times_out_as_failed():
    clock = FakeClock()
    poller = make_poller(lambda: {"status": "PENDING"}, clock, interval=4, timeout=10)

    assert poller.poll() == FAILED
    # 4 + 4 + 2: the last sleep is cut to what is left on the countdown
    assert clock.sleeps == [4, 4, 2]
    assert poller.seconds_left() == 0


def test_server_failed_status_ends_poll():
    clock = FakeClock()
    poller = make_poller(statuses("PENDING", "FAILED"), clock)

    assert poller.poll() == FAILED
    assert clock.now == 3


def test_fetch_errors_do_not_stop_polling():
    clock = FakeClock()
    poller = make_poller(
        statuses(requests.ConnectionError("down"), "PENDING", "PAID"),
        clock,
    )

    assert poller.poll() == PAID
    assert len(clock.sleeps) == 2


def test_stop_from_tick_callback():
    clock = FakeClock()
    ticks = []

    def on_tick(remaining):
        ticks.append(remaining)
        if len(ticks) == 2:
            poller.stop()

    poller = PaymentStatusPoller(
        lambda: {"status": "PENDING"},
        interval=3,
        timeout=15,
        clock=clock,
        sleep=clock.sleep,
        on_tick=on_tick,
    )

    assert poller.poll() == STOPPED
    assert ticks == [15, 12]


def test_seconds_left_before_and_during_poll():
    clock = FakeClock()
    poller = make_poller(lambda: {"status": "PENDING"}, clock, timeout=900)
    assert poller.seconds_left() == 900

    poller._deadline = clock() + 900
    clock.now = 100.5
    assert poller.seconds_left() == 800


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PaymentStatusPoller(lambda: {}, interval=0)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.calls = []
        self.responses = list(responses)

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)


def test_client_requests():
    session = FakeSession([
        FakeResponse({"payment_id": 1, "status": "PENDING"}),
        FakeResponse({"status": "PENDING"}),
        FakeResponse({"id": 1, "status": "PENDING"}),
    ])
    client = PaymentsClient("http://api.test/", token="abc", session=session)

    client.create_qr(7)
    client.get_status(7)
    client.retry(1)

    assert session.headers["Authorization"] == "Bearer abc"
    assert session.calls == [
        ("POST", "http://api.test/payments/create-qr", {"json": {"booking_id": 7}}),
        ("GET", "http://api.test/payments/7/status", {}),
        ("POST", "http://api.test/payments/1/retry", {}),
    ]


def test_wait_for_payment_survives_http_errors():
    session = FakeSession([
        FakeResponse({}, status_code=502),
        FakeResponse({"status": "PAID"}),
    ])
    client = PaymentsClient("http://api.test", session=session)
    clock = FakeClock()

    outcome = wait_for_payment(client, 7, interval=3, timeout=30, clock=clock, sleep=clock.sleep)

    assert outcome == PAID
    assert clock.sleeps == [3]
