from beanie import PydanticObjectId

from agency_backend.database.models import Booking
from agency_backend.schemas.enums import AuditAction
from tests.utils import audit_records, auth_headers

NEW_BOOKING = {
    "customerName": "Kwame Mensah",
    "customerEmail": "Kwame@Example.com",
    "tourName": "Kakum Canopy Walk",
    "numberOfTravelers": 2,
    "totalAmount": 1200.0,
    "source": "phone",
}


async def create(client, user, **overrides):
    response = await client.post("/api/bookings", json={**NEW_BOOKING, **overrides}, headers=auth_headers(user))
    assert response.status_code == 201
    return response.json()["data"]


async def test_create_booking(client, finance_officer):
    data = await create(client, finance_officer)

    assert data["reference_number"].startswith("BK-")
    assert data["customer_email"] == "kwame@example.com"
    assert data["status"] == "Pending"
    assert data["payment_status"] == "pending"
    assert data["source"] == "phone"
    assert data["created_by"] == str(finance_officer.id)
    assert len(await audit_records(AuditAction.BOOKING_CREATED)) == 1


async def test_reviewer_has_no_booking_access(client, reviewer):
    response = await client.get("/api/bookings", headers=auth_headers(reviewer))
    assert response.status_code == 403


async def test_create_booking_validates_travellers(client, finance_officer):
    response = await client.post("/api/bookings", json={**NEW_BOOKING, "numberOfTravelers": 0},
                                 headers=auth_headers(finance_officer))
    assert response.status_code == 400


async def test_status_transitions_and_timestamps(client, visa_officer):
    booking = await create(client, visa_officer)
    url = f"/api/bookings/{booking['id']}/status"

    confirmed = await client.patch(url, json={"status": "confirmed"}, headers=auth_headers(visa_officer))
    assert confirmed.json()["data"]["status"] == "Confirmed"
    assert confirmed.json()["data"]["confirmed_at"] is not None

    cancelled = await client.patch(url, json={"status": "Cancelled"}, headers=auth_headers(visa_officer))
    assert cancelled.json()["data"]["cancelled_at"] is not None

    invalid = await client.patch(url, json={"status": "Lost"}, headers=auth_headers(visa_officer))
    assert invalid.status_code == 400
    assert "In Progress" in invalid.json()["validStatuses"]


async def test_payment_is_finance_only(client, visa_officer, finance_officer):
    booking = await create(client, visa_officer)
    url = f"/api/bookings/{booking['id']}/payment"

    refused = await client.patch(url, json={"paymentStatus": "paid"}, headers=auth_headers(visa_officer))
    paid = await client.patch(url, json={"paymentStatus": "paid"}, headers=auth_headers(finance_officer))

    assert refused.status_code == 403
    assert paid.json()["data"]["payment_status"] == "paid"


async def test_stats_sum_paid_revenue(client, finance_officer):
    first = await create(client, finance_officer, totalAmount=500)
    await create(client, finance_officer, totalAmount=800)
    await client.patch(f"/api/bookings/{first['id']}/payment", json={"paymentStatus": "paid"},
                       headers=auth_headers(finance_officer))

    response = await client.get("/api/bookings/stats", headers=auth_headers(finance_officer))

    data = response.json()["data"]
    assert data["total"] == 2
    assert data["totalRevenue"] == 500
    assert data["byPaymentStatus"] == {"pending": 1, "partial": 0, "paid": 1, "refunded": 0}
    assert data["byStatus"]["Pending"] == 2


async def test_list_search_and_filters(client, finance_officer):
    await create(client, finance_officer)
    await create(client, finance_officer, customerName="Adwoa Boateng", tourName="Mole Safari")

    found = await client.get("/api/bookings", params={"search": "mole"}, headers=auth_headers(finance_officer))
    pending = await client.get("/api/bookings", params={"paymentStatus": "pending"},
                               headers=auth_headers(finance_officer))

    assert [b["customer_name"] for b in found.json()["data"]["bookings"]] == ["Adwoa Boateng"]
    assert pending.json()["data"]["pagination"]["total"] == 2


async def test_update_comments_and_notes(client, visa_officer):
    booking = await create(client, visa_officer)
    url = f"/api/bookings/{booking['id']}"

    updated = await client.put(url, json={"numberOfTravelers": 4}, headers=auth_headers(visa_officer))
    assert updated.json()["data"]["number_of_travelers"] == 4

    await client.post(f"{url}/comments", json={"text": "Pickup confirmed for 6am", "isVisibleToCustomer": True},
                      headers=auth_headers(visa_officer))
    await client.post(f"{url}/notes", json={"note": "Customer prefers window seats"},
                      headers=auth_headers(visa_officer))

    stored = await Booking.get(PydanticObjectId(booking["id"]))
    assert [c.text for c in stored.comments] == ["Pickup confirmed for 6am"]
    assert [n.text for n in stored.internal_notes] == ["Customer prefers window seats"]

    status = await client.get("/api/public/bookings/status",
                              params={"referenceNumber": booking["reference_number"], "email": "kwame@example.com"})
    assert [c["text"] for c in status.json()["data"]["comments"]] == ["Pickup confirmed for 6am"]


async def test_bulk_delete_skips_foreign_bookings(client, super_admin, finance_officer):
    own = await create(client, finance_officer)
    foreign = await create(client, super_admin)

    response = await client.request("DELETE", "/api/bookings/bulk/delete",
                                    json={"ids": [own["id"], foreign["id"]]}, headers=auth_headers(finance_officer))

    assert response.json()["data"]["deleted"] == [own["id"]]
    assert await Booking.find({}).count() == 1


async def test_bulk_delete_with_a_malformed_id_deletes_nothing(client, super_admin):
    booking = await create(client, super_admin)

    response = await client.request("DELETE", "/api/bookings/bulk/delete", json={"ids": [booking["id"], "42"]},
                                    headers=auth_headers(super_admin))

    assert response.status_code == 400
    assert await Booking.find({}).count() == 1


async def test_delete_is_super_admin_only(client, super_admin, finance_officer):
    booking = await create(client, finance_officer)

    refused = await client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(finance_officer))
    deleted = await client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(super_admin))

    assert refused.status_code == 403
    assert deleted.status_code == 200
    assert await Booking.find({}).count() == 0
