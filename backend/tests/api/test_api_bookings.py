"""
预订 API 测试
/api/bookings、/api/booking-rooms、/api/booking-addons
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from backoffice.models.entities import Addon, Booking, BookingAddon, BookingRoom, Room, RoomStatus


def _day(offset: int) -> str:
    return (date.today() + timedelta(days=offset)).isoformat()


def _booking_body(guest, payment_status, room_ids, addon_ids=(), checkin=10, checkout=12):
    return {
        "guest_id": guest.id,
        "payment_status_id": payment_status.id,
        "checkin_date": _day(checkin),
        "checkout_date": _day(checkout),
        "num_adults": 2,
        "booking_amount": 300,
        "room_ids": list(room_ids),
        "addon_ids": list(addon_ids),
    }


@pytest.fixture
def second_room(db_session, sample_floor, sample_room_class, sample_room_status):
    room = Room(number=102, floor_id=sample_floor.id, room_class_id=sample_room_class.id,
                room_status_id=sample_room_status.id)
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def maintenance_status(db_session):
    status = RoomStatus(name="Maintenance", number=2, color="#FF0000", is_available=False)
    db_session.add(status)
    db_session.commit()
    db_session.refresh(status)
    return status


@pytest.fixture
def sample_booking(client: TestClient, auth_headers, sample_guest, sample_payment_status,
                   sample_room, sample_addon):
    """第 10 到 12 天入住 101 房，附带早餐"""
    response = client.post("/api/bookings",
                           json=_booking_body(sample_guest, sample_payment_status,
                                              [sample_room.id], [sample_addon.id]),
                           headers=auth_headers)
    assert response.status_code == 201
    return response.json()["data"]


class TestCreateBooking:

    def test_create_with_rooms_and_addons(self, client: TestClient, auth_headers, db_session,
                                          sample_booking):
        """创建预订，房间链接带入住日期，附加服务带数量"""
        assert sample_booking["guest"]["name"] == "Alice Walker"
        assert sample_booking["payment_status"]["name"] == "Paid"
        assert [r["number"] for r in sample_booking["rooms"]] == [101]
        assert sample_booking["rooms"][0]["floor"]["number"] == 1
        assert sample_booking["rooms"][0]["room_class"]["name"] == "Deluxe"
        assert sample_booking["addons"][0]["addon_name"] == "Breakfast"
        assert sample_booking["addons"][0]["quantity"] == 1

        edge = db_session.query(BookingRoom).one()
        assert edge.check_in == date.today() + timedelta(days=10)
        assert edge.check_out == date.today() + timedelta(days=12)

    def test_checkout_must_follow_checkin(self, client: TestClient, auth_headers, sample_guest,
                                          sample_payment_status, sample_room):
        """离店日期不晚于入住日期返回校验错误"""
        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id],
                             checkin=10, checkout=10)
        response = client.post("/api/bookings", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["errors"][0] == "VALIDATION_ERROR"

    def test_checkin_in_past(self, client: TestClient, auth_headers, sample_guest,
                             sample_payment_status, sample_room):
        """新建预订的入住日期不能早于今天"""
        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id],
                             checkin=-1, checkout=2)
        response = client.post("/api/bookings", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid checkin date"

    def test_requires_room(self, client: TestClient, auth_headers, sample_guest,
                           sample_payment_status):
        """房间列表不能为空"""
        body = _booking_body(sample_guest, sample_payment_status, [])
        response = client.post("/api/bookings", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["errors"][0] == "VALIDATION_ERROR"

    def test_unknown_guest(self, client: TestClient, auth_headers, sample_guest,
                           sample_payment_status, sample_room):
        """引用不存在的客人返回 404"""
        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id])
        body["guest_id"] = "missing"
        response = client.post("/api/bookings", json=body, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Guest not found"

    def test_unknown_room(self, client: TestClient, auth_headers, db_session, sample_guest,
                          sample_payment_status):
        """引用不存在的房间返回 404，不写入预订"""
        body = _booking_body(sample_guest, sample_payment_status, ["missing"])
        response = client.post("/api/bookings", json=body, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Room not found"
        assert db_session.query(Booking).count() == 0

    def test_room_status_not_available(self, client: TestClient, auth_headers, db_session,
                                       sample_guest, sample_payment_status, sample_room,
                                       maintenance_status):
        """房态不可用的房间不能预订"""
        sample_room.room_status_id = maintenance_status.id
        db_session.commit()

        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id])
        response = client.post("/api/bookings", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Rooms not available"
        assert response.json()["errors"] == ["VALIDATION_ERROR", "Rooms 101 are not available for booking"]

    def test_overlapping_stay(self, client: TestClient, auth_headers, sample_booking,
                              sample_guest, sample_payment_status, sample_room):
        """入住区间重叠的房间不能再次预订"""
        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id],
                             checkin=11, checkout=13)
        response = client.post("/api/bookings", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Rooms not available for selected dates"
        assert response.json()["errors"][1] == "Rooms 101 are already booked for the selected dates"

    def test_adjacent_stay(self, client: TestClient, auth_headers, sample_booking,
                           sample_guest, sample_payment_status, sample_room):
        """离店当天可以接着入住"""
        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id],
                             checkin=12, checkout=14)
        response = client.post("/api/bookings", json=body, headers=auth_headers)
        assert response.status_code == 201


class TestUpdateBooking:

    def test_replace_rooms(self, client: TestClient, auth_headers, db_session, sample_booking,
                           sample_guest, sample_payment_status, second_room):
        """整体更新替换房间与附加服务"""
        body = _booking_body(sample_guest, sample_payment_status, [second_room.id],
                             checkin=20, checkout=22)
        response = client.put(f"/api/bookings/{sample_booking['id']}", json=body,
                              headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert [r["number"] for r in data["rooms"]] == [102]
        assert data["addons"] == []
        edge = db_session.query(BookingRoom).one()
        assert edge.room_id == second_room.id
        assert edge.check_in == date.today() + timedelta(days=20)
        assert db_session.query(BookingAddon).count() == 0

    def test_keep_room_after_status_change(self, client: TestClient, auth_headers, db_session,
                                           sample_booking, sample_guest, sample_payment_status,
                                           sample_room, maintenance_status):
        """已在预订中的房间不再检查房态，可延长入住"""
        sample_room.room_status_id = maintenance_status.id
        db_session.commit()

        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id],
                             checkin=10, checkout=13)
        response = client.put(f"/api/bookings/{sample_booking['id']}", json=body,
                              headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["data"]["checkout_date"] == _day(13)

    def test_update_does_not_conflict_with_itself(self, client: TestClient, auth_headers,
                                                  sample_booking, sample_guest,
                                                  sample_payment_status, sample_room):
        """更新时自身的房间区间不算冲突"""
        body = _booking_body(sample_guest, sample_payment_status, [sample_room.id],
                             checkin=11, checkout=12)
        body["booking_amount"] = 150
        response = client.put(f"/api/bookings/{sample_booking['id']}", json=body,
                              headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["booking_amount"] == 150


class TestListAndDeleteBooking:

    def test_filter_by_guest(self, client: TestClient, auth_headers, sample_booking, sample_guest):
        """按客人过滤预订"""
        response = client.get("/api/bookings", params={"guest_id": sample_guest.id},
                              headers=auth_headers)
        assert response.status_code == 200
        assert [b["id"] for b in response.json()["data"]["items"]] == [sample_booking["id"]]

        response = client.get("/api/bookings", params={"guest_id": "other"}, headers=auth_headers)
        assert response.json()["data"]["meta"]["total"] == 0

    def test_delete_removes_links(self, client: TestClient, auth_headers, db_session, sample_booking):
        """删除预订时一并删除房间与附加服务链接"""
        response = client.delete(f"/api/bookings/{sample_booking['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert db_session.query(Booking).count() == 0
        assert db_session.query(BookingRoom).count() == 0
        assert db_session.query(BookingAddon).count() == 0

    def test_room_with_booking_cannot_be_deleted(self, client: TestClient, auth_headers,
                                                 sample_booking, sample_room):
        """有预订的房间不能删除"""
        response = client.delete(f"/api/rooms/{sample_room.id}", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete room that has bookings"


class TestBookingRooms:

    def test_create(self, client: TestClient, auth_headers, sample_booking, second_room):
        """为预订追加房间"""
        response = client.post("/api/booking-rooms", json={
            "booking_id": sample_booking["id"], "room_id": second_room.id,
            "check_in": _day(10), "check_out": _day(12),
        }, headers=auth_headers)

        assert response.status_code == 201
        assert response.json()["data"]["room"]["number"] == 102

    def test_overlap(self, client: TestClient, auth_headers, sample_booking, sample_room):
        """同一房间区间重叠返回 400"""
        response = client.post("/api/booking-rooms", json={
            "booking_id": sample_booking["id"], "room_id": sample_room.id,
            "check_in": _day(11), "check_out": _day(15),
        }, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Room already booked"

    def test_check_out_must_follow_check_in(self, client: TestClient, auth_headers,
                                            sample_booking, second_room):
        """离店日期不晚于入住日期返回校验错误"""
        response = client.post("/api/booking-rooms", json={
            "booking_id": sample_booking["id"], "room_id": second_room.id,
            "check_in": _day(12), "check_out": _day(11),
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["errors"][0] == "VALIDATION_ERROR"

    def test_bulk_create_sees_earlier_rows(self, client: TestClient, auth_headers, db_session,
                                           sample_booking, second_room):
        """批量创建时后面的行会与前面已写入的行比较区间"""
        first = {"booking_id": sample_booking["id"], "room_id": second_room.id,
                 "check_in": _day(30), "check_out": _day(33)}
        second = {**first, "check_in": _day(32), "check_out": _day(34)}

        response = client.post("/api/booking-rooms/bulk", json={"items": [first, second]},
                               headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Room already booked"
        assert db_session.query(BookingRoom).count() == 1

    def test_bulk_create(self, client: TestClient, auth_headers, sample_booking, second_room):
        """批量创建互不重叠的区间"""
        first = {"booking_id": sample_booking["id"], "room_id": second_room.id,
                 "check_in": _day(30), "check_out": _day(32)}
        second = {**first, "check_in": _day(32), "check_out": _day(34)}

        response = client.post("/api/booking-rooms/bulk", json={"items": [first, second]},
                               headers=auth_headers)
        assert response.status_code == 201
        assert len(response.json()["data"]) == 2


class TestBookingAddons:

    def test_duplicate_pair(self, client: TestClient, auth_headers, sample_booking, sample_addon):
        """同一预订与附加服务的组合唯一"""
        response = client.post("/api/booking-addons", json={
            "booking_id": sample_booking["id"], "addon_id": sample_addon.id, "quantity": 2,
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Booking addon already exists"

    def test_bulk_create(self, client: TestClient, auth_headers, db_session, sample_booking):
        """批量追加附加服务并记录数量"""
        spa = Addon(addon_name="Spa", price=Decimal("40.00"))
        db_session.add(spa)
        db_session.commit()

        response = client.post("/api/booking-addons/bulk", json={"items": [
            {"booking_id": sample_booking["id"], "addon_id": spa.id, "quantity": 3},
        ]}, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()["data"][0]
        assert data["quantity"] == 3
        assert data["addon"]["addon_name"] == "Spa"

    def test_unknown_booking(self, client: TestClient, auth_headers, sample_addon):
        """引用不存在的预订返回 404"""
        response = client.post("/api/booking-addons", json={
            "booking_id": "missing", "addon_id": sample_addon.id,
        }, headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Booking not found"
