import pytest
from sqlmodel import select

from conftest import auth_headers, next_workday
from app.models import Notification, Staff


def complete(client, owner, booking_id):
    for status in ("CONFIRMED", "IN_PROGRESS", "COMPLETED"):
        r = client.patch(f"/bookings/{booking_id}/status", json={"status": status}, headers=auth_headers(owner))
        assert r.status_code == 200


@pytest.fixture
def completed_booking(client, owner, salon, services, staff, book):
    booking = book(salon.id, [services[0].id], next_workday(), "10:00", staff_id=staff.id).json()
    complete(client, owner, booking["id"])
    return booking


def test_review_completed_booking(client, session, customer, owner, staff, completed_booking):
    r = client.post("/reviews", json={
        "booking_id": completed_booking["id"], "rating": 4, "comment": "Cắt đẹp",
    }, headers=auth_headers(customer))

    assert r.status_code == 201
    assert r.json()["staff_id"] == staff.id
    assert session.get(Staff, staff.id).rating == 4

    note = session.exec(select(Notification).where(Notification.user_id == owner.id)).one()
    assert note.type == "REVIEW_RECEIVED"
    assert "4 sao" in note.message

    again = client.post("/reviews", json={"booking_id": completed_booking["id"], "rating": 5}, headers=auth_headers(customer))
    assert again.status_code == 409


def test_review_rules(client, customer, other_customer, salon, services, book, completed_booking):
    pending = book(salon.id, [services[0].id], next_workday(), "15:00").json()

    r = client.post("/reviews", json={"booking_id": pending["id"], "rating": 5}, headers=auth_headers(customer))
    assert r.status_code == 422

    r = client.post("/reviews", json={"booking_id": completed_booking["id"], "rating": 5}, headers=auth_headers(other_customer))
    assert r.status_code == 403

    r = client.post("/reviews", json={"booking_id": completed_booking["id"], "rating": 6}, headers=auth_headers(customer))
    assert r.status_code == 422

    r = client.post("/reviews", json={"booking_id": 9999, "rating": 5}, headers=auth_headers(customer))
    assert r.status_code == 404


def test_salon_reviews_summary(client, owner, other_customer, salon, services, staff, book, customer, completed_booking):
    client.post("/reviews", json={"booking_id": completed_booking["id"], "rating": 5}, headers=auth_headers(customer))
    second = book(salon.id, [services[0].id], next_workday(), "11:00", staff_id=staff.id, headers=auth_headers(other_customer)).json()
    complete(client, owner, second["id"])
    client.post("/reviews", json={"booking_id": second["id"], "rating": 2}, headers=auth_headers(other_customer))

    body = client.get(f"/reviews/salon/{salon.id}").json()
    assert body["meta"]["total"] == 2
    assert body["meta"]["average_rating"] == 3.5
    assert body["meta"]["distribution"] == {"1": 0, "2": 1, "3": 0, "4": 0, "5": 1}

    filtered = client.get(f"/reviews/salon/{salon.id}", params={"min_rating": 4}).json()
    assert [r["rating"] for r in filtered["data"]] == [5]

    assert client.get(f"/salons/{salon.id}").json()["average_rating"] == 3.5


def test_reply_and_visibility(client, session, customer, owner, staff, salon, completed_booking):
    review = client.post("/reviews", json={"booking_id": completed_booking["id"], "rating": 3}, headers=auth_headers(customer)).json()

    assert client.patch(f"/reviews/{review['id']}/reply", json={"reply": "Cảm ơn"}, headers=auth_headers(customer)).status_code == 403
    r = client.patch(f"/reviews/{review['id']}/reply", json={"reply": "Cảm ơn anh"}, headers=auth_headers(owner))
    assert r.json()["reply"] == "Cảm ơn anh"
    assert r.json()["replied_at"] is not None

    r = client.patch(f"/reviews/{review['id']}/toggle-visibility", headers=auth_headers(owner))
    assert r.json()["is_visible"] is False
    assert client.get(f"/reviews/salon/{salon.id}").json()["meta"]["total"] == 0
    assert session.get(Staff, staff.id).rating == 0

    assert client.get(f"/reviews/{review['id']}").status_code == 200
    assert client.get("/reviews/9999").status_code == 404
