import re
from datetime import datetime, time, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from conftest import auth_headers, make_user, next_workday
from app.core import now_local
from app.models import Booking, Notification, Staff
from app.routers.staff_routes import add_default_schedule


@pytest.fixture
def second_staff(session, salon):
    user = make_user(session, "huy@example.com", role="STAFF", name="Huy Barber")
    member = Staff(user_id=user.id, salon_id=salon.id)
    session.add(member)
    session.flush()
    add_default_schedule(session, member.id)
    session.commit()
    session.refresh(member)
    return member


def test_create_booking(client, session, customer, salon, services, staff, book):
    day = next_workday()

    r = book(salon.id, [services[0].id, services[1].id], day, "09:00", staff_id=staff.id)

    assert r.status_code == 201
    body = r.json()
    assert re.fullmatch(r"RB[A-Z0-9]{10}", body["booking_code"])
    assert body["total_duration"] == 45
    assert body["total_amount"] == 150000
    assert body["starts_at"] == f"{day.isoformat()}T09:00:00"
    assert body["ends_at"] == f"{day.isoformat()}T09:45:00"
    assert body["status"] == "PENDING"
    assert body["payment_status"] == "UNPAID"
    assert [s["name"] for s in body["services"]] == ["Cắt tóc nam", "Gội massage"]

    notes = session.exec(select(Notification).where(Notification.user_id == customer.id)).all()
    assert [n.type for n in notes] == ["BOOKING_CREATED"]
    assert body["booking_code"] in notes[0].message


def test_off_grid_schedule_slots_are_bookable(client, staff, stylist_user, salon, services, book):
    day = next_workday()
    days = [{"day_of_week": day.weekday(), "start_time": "09:15", "end_time": "11:00"}]
    client.put(f"/staff/{staff.id}/schedule", json=days, headers=auth_headers(stylist_user))

    slots = client.get(f"/staff/{staff.id}/available-slots", params={"date": day.isoformat()}).json()
    assert slots["available_starts"] == ["09:30", "10:00", "10:30"]

    for slot in slots["available_starts"]:
        r = book(salon.id, [services[0].id], day, slot, staff_id=staff.id)
        assert r.status_code == 201


def test_double_booking_rejected(client, other_customer, salon, services, staff, book):
    day = next_workday()
    assert book(salon.id, [services[2].id], day, "09:00", staff_id=staff.id).status_code == 201

    same = book(salon.id, [services[0].id], day, "09:00", staff_id=staff.id, headers=auth_headers(other_customer))
    assert same.status_code == 409

    # 09:00-10:30 is taken, 10:00 overlaps it
    inside = book(salon.id, [services[0].id], day, "10:00", staff_id=staff.id)
    assert inside.status_code == 409

    after = book(salon.id, [services[0].id], day, "10:30", staff_id=staff.id)
    assert after.status_code == 201


def test_other_stylist_can_take_same_slot(client, salon, services, staff, second_staff, book):
    day = next_workday()
    assert book(salon.id, [services[0].id], day, "09:00", staff_id=staff.id).status_code == 201
    assert book(salon.id, [services[0].id], day, "09:00", staff_id=second_staff.id).status_code == 201


def test_cancelled_booking_frees_slot(client, salon, services, staff, book, customer):
    day = next_workday()
    first = book(salon.id, [services[0].id], day, "09:00", staff_id=staff.id).json()

    r = client.patch(f"/bookings/{first['id']}/cancel", json={"reason": "Bận"}, headers=auth_headers(customer))
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert r.json()["cancel_reason"] == "Bận"

    assert book(salon.id, [services[0].id], day, "09:00", staff_id=staff.id).status_code == 201


def test_unique_index_blocks_concurrent_insert(session, customer, salon, staff):
    start = datetime.combine(next_workday(), time(9, 0))
    for code in ("RBAAAAAAAAAA", "RBBBBBBBBBBB"):
        session.add(Booking(
            booking_code=code,
            customer_id=customer.id,
            salon_id=salon.id,
            staff_id=staff.id,
            starts_at=start,
            ends_at=start + timedelta(minutes=30),
            total_duration=30,
            total_amount=100000,
        ))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_unique_index_ignores_released_bookings(session, customer, salon, staff):
    start = datetime.combine(next_workday(), time(9, 0))
    for code, status in (("RBAAAAAAAAAA", "CANCELLED"), ("RBBBBBBBBBBB", "NO_SHOW"), ("RBCCCCCCCCCC", "PENDING")):
        session.add(Booking(
            booking_code=code,
            customer_id=customer.id,
            salon_id=salon.id,
            staff_id=staff.id,
            starts_at=start,
            ends_at=start + timedelta(minutes=30),
            total_duration=30,
            total_amount=100000,
            status=status,
        ))
    session.commit()


def test_booking_time_validation(client, session, salon, services, staff, book):
    service_ids = [services[0].id]
    day = next_workday()

    assert book(salon.id, service_ids, day, "09:15").status_code == 422
    assert book(salon.id, service_ids, day, "20:30").status_code == 422
    assert book(salon.id, service_ids, day, "08:00").status_code == 422
    assert book(salon.id, service_ids, day, "9am").status_code == 422

    yesterday = now_local().date() - timedelta(days=1)
    assert book(salon.id, service_ids, yesterday, "10:00").status_code == 422

    too_far = now_local().date() + timedelta(days=40)
    assert book(salon.id, service_ids, too_far, "10:00").status_code == 422

    salon.working_days = [d for d in range(7) if d != day.weekday()]
    session.add(salon)
    session.commit()
    r = book(salon.id, service_ids, day, "10:00")
    assert r.status_code == 422
    assert r.json()["detail"] == "Salon is closed that day"


def test_booking_reference_validation(client, session, owner, salon, services, staff, book):
    day = next_workday()

    assert book(9999, [services[0].id], day, "10:00").status_code == 404
    assert book(salon.id, [9999], day, "10:00").status_code == 422
    assert book(salon.id, [], day, "10:00").status_code == 422
    assert book(salon.id, [services[0].id], day, "10:00", staff_id=9999).status_code == 422

    client.patch(f"/services/{services[1].id}/toggle-active", headers=auth_headers(owner))
    assert book(salon.id, [services[1].id], day, "10:00").status_code == 422

    salon.is_active = False
    session.add(salon)
    session.commit()
    assert book(salon.id, [services[0].id], day, "10:00").status_code == 404


def test_staff_day_off_rejected(client, salon, services, staff, book):
    day = next_workday()
    sunday = day + timedelta(days=(6 - day.weekday()))

    r = book(salon.id, [services[0].id], sunday, "10:00", staff_id=staff.id)
    assert r.status_code == 422


def test_booking_over_lunch_break_conflicts(client, salon, services, staff, stylist_user, book):
    day = next_workday()
    client.post(f"/staff/{staff.id}/blocks", json={
        "date": day.isoformat(), "kind": "lunch_break", "start_time": "12:00",
    }, headers=auth_headers(stylist_user))

    assert book(salon.id, [services[0].id], day, "11:30", staff_id=staff.id).status_code == 201
    assert book(salon.id, [services[2].id], day, "10:30", staff_id=staff.id).status_code == 409
    assert book(salon.id, [services[0].id], day, "12:00", staff_id=staff.id).status_code == 409


def test_status_lifecycle(client, session, customer, owner, stylist_user, salon, services, staff, book):
    booking = book(salon.id, [services[0].id], next_workday(), "10:00", staff_id=staff.id).json()
    url = f"/bookings/{booking['id']}/status"

    assert client.patch(url, json={"status": "CONFIRMED"}, headers=auth_headers(customer)).status_code == 403
    assert client.patch(url, json={"status": "COMPLETED"}, headers=auth_headers(owner)).status_code == 422

    r = client.patch(url, json={"status": "CONFIRMED"}, headers=auth_headers(owner))
    assert r.status_code == 200
    assert r.json()["status"] == "CONFIRMED"

    assert client.patch(url, json={"status": "IN_PROGRESS"}, headers=auth_headers(stylist_user)).status_code == 200
    r = client.patch(url, json={"status": "COMPLETED"}, headers=auth_headers(stylist_user))
    assert r.json()["status"] == "COMPLETED"
    assert r.json()["payment_status"] == "PAID"

    r = client.patch(url, json={"status": "CANCELLED"}, headers=auth_headers(owner))
    assert r.status_code == 422

    types = session.exec(
        select(Notification.type).where(Notification.user_id == customer.id).order_by(Notification.id)
    ).all()
    assert types == ["BOOKING_CREATED", "BOOKING_CONFIRMED"]


def test_no_show_frees_slot(client, owner, salon, services, staff, book):
    day = next_workday()
    booking = book(salon.id, [services[0].id], day, "10:00", staff_id=staff.id).json()
    url = f"/bookings/{booking['id']}/status"
    client.patch(url, json={"status": "CONFIRMED"}, headers=auth_headers(owner))
    client.patch(url, json={"status": "NO_SHOW"}, headers=auth_headers(owner))

    assert book(salon.id, [services[0].id], day, "10:00", staff_id=staff.id).status_code == 201


def test_cancel_rules(client, customer, other_customer, owner, salon, services, book):
    booking = book(salon.id, [services[0].id], next_workday(), "10:00").json()
    url = f"/bookings/{booking['id']}/cancel"

    assert client.patch(url, headers=auth_headers(other_customer)).status_code == 403
    r = client.patch(url, headers=auth_headers(owner))
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert client.patch(url, headers=auth_headers(customer)).status_code == 409


def test_booking_access(client, customer, other_customer, owner, stylist_user, salon, services, staff, book):
    booking = book(salon.id, [services[0].id], next_workday(), "10:00").json()

    assert client.get(f"/bookings/{booking['id']}", headers=auth_headers(customer)).status_code == 200
    assert client.get(f"/bookings/{booking['id']}", headers=auth_headers(owner)).status_code == 200
    assert client.get(f"/bookings/{booking['id']}", headers=auth_headers(stylist_user)).status_code == 200
    assert client.get(f"/bookings/{booking['id']}", headers=auth_headers(other_customer)).status_code == 403
    assert client.get("/bookings/9999", headers=auth_headers(customer)).status_code == 404

    r = client.get(f"/bookings/code/{booking['booking_code'].lower()}", headers=auth_headers(customer))
    assert r.json()["id"] == booking["id"]


def test_assign_staff(client, owner, salon, services, staff, second_staff, book):
    day = next_workday()
    taken = book(salon.id, [services[0].id], day, "10:00", staff_id=staff.id).json()
    open_booking = book(salon.id, [services[0].id], day, "10:00").json()
    assert open_booking["staff_id"] is None

    url = f"/bookings/{open_booking['id']}/assign-staff"
    assert client.patch(url, json={"staff_id": staff.id}, headers=auth_headers(owner)).status_code == 409

    r = client.patch(url, json={"staff_id": second_staff.id}, headers=auth_headers(owner))
    assert r.status_code == 200
    assert r.json()["staff_id"] == second_staff.id

    # moving a booking onto its own stylist is not a conflict with itself
    r = client.patch(f"/bookings/{taken['id']}/assign-staff", json={"staff_id": staff.id}, headers=auth_headers(owner))
    assert r.status_code == 200


def test_listings(client, session, customer, owner, admin, salon, services, staff, book):
    day = next_workday()
    book(salon.id, [services[0].id], day, "10:00", staff_id=staff.id)
    book(salon.id, [services[0].id], day, "11:00", staff_id=staff.id)

    today = datetime.combine(now_local().date(), time(0, 0))
    session.add(Booking(
        booking_code="RBTODAY00001",
        customer_id=customer.id,
        salon_id=salon.id,
        starts_at=today,
        ends_at=today + timedelta(minutes=30),
        total_duration=30,
        total_amount=100000,
        status="CONFIRMED",
    ))
    session.commit()

    mine = client.get("/bookings/mine", headers=auth_headers(customer)).json()
    assert mine["meta"]["total"] == 3

    upcoming = client.get("/bookings/upcoming", headers=auth_headers(customer)).json()
    assert [b["booking_code"] for b in upcoming][0] == "RBTODAY00001"
    assert len(upcoming) == 3

    today_list = client.get(f"/bookings/today/{salon.id}", headers=auth_headers(owner)).json()
    assert [b["booking_code"] for b in today_list] == ["RBTODAY00001"]
    assert client.get(f"/bookings/today/{salon.id}", headers=auth_headers(customer)).status_code == 403

    r = client.get("/bookings", params={"salon_id": salon.id, "status": "PENDING"}, headers=auth_headers(owner))
    assert r.json()["meta"]["total"] == 2

    assert client.get("/bookings", headers=auth_headers(owner)).status_code == 422
    assert client.get("/bookings", headers=auth_headers(customer)).status_code == 403
    assert client.get("/bookings", headers=auth_headers(admin)).json()["meta"]["total"] == 3
