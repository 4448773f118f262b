import uuid
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from quickshow.api.v1.public import payments as payments_route
from quickshow.core.exceptions import PaymentUpstreamError
from quickshow.models.booking import Booking, PaymentState
from quickshow.models.notification import Notification

from quickshow.services import ledger, reservation

from conftest import auth_headers, intent_event, sign_payload, stripe_event

API = "/api/v1"
ALICE = auth_headers("user-alice")
BOB = auth_headers("user-bob")
ADMIN = auth_headers("admin-1", role="admin")


def _book(client, show_id, seats, headers=ALICE):
    return client.post(
        f"{API}/bookings/",
        json={"show_id": str(show_id), "seats": seats},
        headers={**headers, "Origin": "https://quickshow.test"},
    )


def _webhook(client, payload, signature=None):
    return client.post(
        f"{API}/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": signature or sign_payload(payload)},
    )


def test_root(client):
    assert client.get("/").json() == {"Hello": "QuickShow"}


def test_booking_returns_checkout(client, make_show, payments):
    show = make_show(price="10.00")

    response = _book(client, show.id, ["A1", "A2"])

    assert response.status_code == 201
    body = response.json()
    assert Decimal(body["amount"]) == Decimal("20.00")
    assert body["seats"] == ["A1", "A2"]
    assert body["checkout_url"].endswith("cs_test_1")
    assert payments.requests[0].success_url == "https://quickshow.test/loading/my-bookings"


def test_booking_requires_authentication(client, make_show):
    show = make_show()
    response = client.post(f"{API}/bookings/", json={"show_id": str(show.id), "seats": ["A1"]})
    assert response.status_code == 401


def test_conflicting_booking_is_409_with_the_taken_seats(client, make_show):
    show = make_show()
    assert _book(client, show.id, ["A1", "A2"], headers=ALICE).status_code == 201

    response = _book(client, show.id, ["A2", "A3"], headers=BOB)

    assert response.status_code == 409
    assert response.json()["conflicting_seats"] == ["A2"]


def test_invalid_seat_lists_are_400(client, make_show):
    show = make_show()
    assert _book(client, show.id, []).status_code == 400
    assert _book(client, show.id, ["A1", "A1"]).status_code == 400
    assert _book(client, show.id, ["A1", "A2", "A3", "A4", "A5", "A6"]).status_code == 400


def test_booking_unknown_show_is_404(client):
    assert _book(client, uuid.uuid4(), ["A1"]).status_code == 404


def test_payment_provider_outage_is_502_and_frees_seats(client, make_show, payments):
    show = make_show()
    payments.error = PaymentUpstreamError()

    assert _book(client, show.id, ["A1"]).status_code == 502

    occupied = client.get(f"{API}/shows/{show.id}/occupied-seats").json()
    assert occupied["occupied_seats"] == []


def test_occupied_seats_and_availability(client, make_show):
    show = make_show()
    _book(client, show.id, ["A1", "A2"])

    occupied = client.get(f"{API}/shows/{show.id}/occupied-seats")
    assert occupied.status_code == 200
    assert sorted(occupied.json()["occupied_seats"]) == ["A1", "A2"]

    check = client.post(f"{API}/shows/{show.id}/check-availability", json={"seats": ["A2", "B1"]})
    assert check.json() == {"available": False, "conflicts": ["A2"]}


def test_list_and_get_shows(client, make_show):
    show = make_show()
    _book(client, show.id, ["A1"])

    listed = client.get(f"{API}/shows/").json()
    assert [s["id"] for s in listed] == [str(show.id)]
    assert listed[0]["occupied_count"] == 1
    assert listed[0]["movie"]["title"] == "Dune: Part Two"

    assert client.get(f"{API}/shows/{show.id}").status_code == 200
    assert client.get(f"{API}/shows/{uuid.uuid4()}").status_code == 404


def test_webhook_marks_paid_and_notifies(client, db, make_show):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]
    payload = stripe_event("checkout.session.completed", booking_id, payment_intent="pi_1")

    response = _webhook(client, payload)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    booking = db.get(Booking, uuid.UUID(booking_id))
    assert booking.payment_state == PaymentState.paid
    assert booking.payment_intent_id == "pi_1"

    notes = client.get(f"{API}/me/notifications", headers=ALICE).json()
    assert notes["total"] == 1
    assert notes["data"][0]["type"] == "booking_confirmed"


def test_duplicate_webhook_is_acknowledged_once_applied(client, db, make_show):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]
    payload = stripe_event("checkout.session.completed", booking_id, payment_intent="pi_1")

    assert _webhook(client, payload).status_code == 200
    assert _webhook(client, payload).status_code == 200

    assert db.query(Notification).filter(Notification.type == "booking_confirmed").count() == 1


def test_webhook_for_expired_booking_is_acknowledged(client):
    payload = stripe_event("checkout.session.completed", str(uuid.uuid4()))
    assert _webhook(client, payload).status_code == 200


def test_webhook_with_bad_signature_is_rejected(client, db, make_show):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]
    payload = stripe_event("checkout.session.completed", booking_id)

    response = _webhook(client, payload, signature=sign_payload(payload, secret="whsec_other"))

    assert response.status_code == 400
    assert db.get(Booking, uuid.UUID(booking_id)).payment_state == PaymentState.unpaid


def test_failed_payment_webhook_keeps_the_hold(client, make_show):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]

    assert _webhook(client, stripe_event("checkout.session.expired", booking_id)).status_code == 200
    assert client.get(f"{API}/shows/{show.id}/occupied-seats").json()["occupied_seats"] == ["A1"]


def test_my_bookings_are_private(client, make_show):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"], headers=ALICE).json()["booking_id"]
    _book(client, show.id, ["B1"], headers=BOB)

    mine = client.get(f"{API}/bookings/", headers=ALICE).json()
    assert mine["total"] == 1
    assert mine["data"][0]["booked_seats"] == ["A1"]
    assert mine["data"][0]["payment_state"] == "unpaid"

    assert client.get(f"{API}/bookings/{booking_id}", headers=ALICE).status_code == 200
    assert client.get(f"{API}/bookings/{booking_id}", headers=BOB).status_code == 404


def test_admin_schedules_shows_in_bulk(client, db):
    body = {
        "movie_title": "Arrival",
        "theater_id": "downtown",
        "screen": "2",
        "format": "IMAX",
        "show_price": "12.50",
        "shows_input": [
            {"date": "2030-05-01", "times": ["18:00", "21:00"]},
            {"date": "2030-05-02", "times": ["18:00"]},
        ],
    }

    created = client.post(f"{API}/admin/shows/", json=body, headers=ADMIN)
    assert created.status_code == 201
    assert created.json()["created_count"] == 3

    again = client.post(f"{API}/admin/shows/", json=body, headers=ADMIN).json()
    assert again["created_count"] == 0
    assert again["skipped_count"] == 3

    broadcasts = db.query(Notification).filter(Notification.type == "show_added").all()
    assert len(broadcasts) == 1
    assert broadcasts[0].user_id is None

    listed = client.get(f"{API}/admin/shows/", headers=ADMIN).json()
    assert len(listed) == 3


def test_admin_routes_reject_regular_users(client):
    assert client.get(f"{API}/admin/dashboard", headers=ALICE).status_code == 403
    assert client.get(f"{API}/admin/bookings", headers=ALICE).status_code == 403
    assert client.get(f"{API}/admin/dashboard").status_code == 401


def test_admin_dashboard_sums_paid_amounts(client, make_show):
    cheap = make_show(price="10.00", title="Cheap")
    dear = make_show(price="15.00", title="Dear")
    for show, seats, headers in ((cheap, ["A1", "A2"], ALICE), (dear, ["A1", "A2"], BOB)):
        booking_id = _book(client, show.id, seats, headers=headers).json()["booking_id"]
        _webhook(client, stripe_event("checkout.session.completed", booking_id))
    _book(client, dear.id, ["C1"], headers=ALICE)

    stats = client.get(f"{API}/admin/dashboard", headers=ADMIN).json()

    assert stats["total_bookings"] == 2
    assert Decimal(stats["total_revenue"]) == Decimal("50.00")
    assert stats["total_users"] == 2

    paid = client.get(f"{API}/admin/bookings", params={"payment_state": "paid"}, headers=ADMIN).json()
    assert paid["total"] == 2


def test_deactivated_show_takes_no_new_bookings(client, make_show):
    show = make_show()

    assert client.delete(f"{API}/admin/shows/{show.id}", headers=ADMIN).status_code == 204
    assert _book(client, show.id, ["A1"]).status_code == 404


def test_notifications_can_be_marked_read(client, notifier):
    notifier.notify("show_reminder", {"user_id": "user-alice", "show_id": uuid.uuid4(), "movie_title": "Arrival"})
    note = client.get(f"{API}/me/notifications", headers=ALICE).json()["data"][0]

    response = client.patch(f"{API}/me/notifications/{note['id']}/read", headers=ALICE)
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    unread = client.get(f"{API}/me/notifications", params={"unread_only": True}, headers=ALICE).json()
    assert unread["total"] == 0


def test_mark_all_read_only_touches_own_notifications(client, notifier):
    notifier.notify("show_reminder", {"user_id": "user-alice", "show_id": uuid.uuid4()})
    notifier.notify("show_reminder", {"user_id": "user-alice", "show_id": uuid.uuid4()})
    notifier.notify("show_reminder", {"user_id": "user-bob", "show_id": uuid.uuid4()})

    response = client.patch(f"{API}/me/notifications/read-all", headers=ALICE)

    assert response.json() == {"marked_read": 2}
    bob = client.get(f"{API}/me/notifications", params={"unread_only": True}, headers=BOB).json()
    assert bob["total"] == 1


def _storage_down():
    return OperationalError("UPDATE shows", {}, Exception("server closed the connection"))


def test_booking_is_503_while_storage_is_down(client, make_show, monkeypatch):
    show = make_show()

    def broken_write(*args, **kwargs):
        raise _storage_down()

    monkeypatch.setattr(reservation, "write_seat_map", broken_write)

    response = _book(client, show.id, ["A1"])

    assert response.status_code == 503


def test_booking_survives_a_brief_storage_outage(client, make_show, monkeypatch):
    show = make_show()
    real_write = reservation.write_seat_map
    failures = []

    def flaky_write(*args, **kwargs):
        if not failures:
            failures.append(True)
            raise _storage_down()
        return real_write(*args, **kwargs)

    monkeypatch.setattr(reservation, "write_seat_map", flaky_write)

    assert _book(client, show.id, ["A1"]).status_code == 201
    assert failures == [True]


def test_webhook_is_503_while_storage_is_down(client, make_show, monkeypatch):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]

    def broken_mark_paid(*args, **kwargs):
        raise _storage_down()

    monkeypatch.setattr(ledger, "mark_paid", broken_mark_paid)

    response = _webhook(client, stripe_event("checkout.session.completed", booking_id))

    assert response.status_code == 503


def test_webhook_database_work_runs_in_the_threadpool(client, db, make_show, monkeypatch):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]
    real_run_in_threadpool = payments_route.run_in_threadpool
    offloaded = []

    async def recording_run_in_threadpool(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(payments_route, "run_in_threadpool", recording_run_in_threadpool)

    assert _webhook(client, stripe_event("checkout.session.completed", booking_id)).status_code == 200
    assert offloaded == ["apply_payment_event"]
    assert db.get(Booking, uuid.UUID(booking_id)).payment_state == PaymentState.paid


def test_failed_payment_intent_webhook_finds_its_booking(client, make_show, monkeypatch):
    show = make_show()
    booking_id = _book(client, show.id, ["A1"]).json()["booking_id"]
    failures = []

    def recording_failure(db, booking_ref, payment_ref=None):
        failures.append((booking_ref, payment_ref))

    monkeypatch.setattr(ledger, "record_payment_failure", recording_failure)

    payload = intent_event("payment_intent.payment_failed", booking_id, intent_id="pi_9")
    assert _webhook(client, payload).status_code == 200

    assert failures == [(uuid.UUID(booking_id), "pi_9")]
    assert client.get(f"{API}/shows/{show.id}/occupied-seats").json()["occupied_seats"] == ["A1"]
