"""
附加服务 API 测试
覆盖 /api/addons 的 CRUD、搜索与批量端点
"""
from datetime import date

from fastapi.testclient import TestClient

from backoffice.models.entities import Booking, BookingAddon


class TestCreateAddon:
    """创建附加服务"""

    def test_create_then_case_insensitive_duplicate(self, client: TestClient, auth_headers):
        """Breakfast 创建成功，breakfast 因重复被拒绝"""
        response = client.post("/api/addons", json={"addon_name": "Breakfast", "price": 10},
                               headers=auth_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Addon created successfully"
        assert body["data"]["id"]
        assert body["data"]["addon_name"] == "Breakfast"
        assert body["response_time"].endswith("ms")

        response = client.post("/api/addons", json={"addon_name": "breakfast", "price": 5},
                               headers=auth_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0] == "DUPLICATE_KEY"
        assert body["data"] is None

    def test_price_must_be_positive(self, client: TestClient, auth_headers):
        """价格必须大于 0"""
        response = client.post("/api/addons", json={"addon_name": "Dinner", "price": 0},
                               headers=auth_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Missing or invalid required fields"
        assert body["errors"][0] == "VALIDATION_ERROR"
        assert any(e.startswith("price") for e in body["errors"][1:])

    def test_missing_name(self, client: TestClient, auth_headers):
        """缺少名称返回校验错误"""
        response = client.post("/api/addons", json={"price": 10}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["errors"][0] == "VALIDATION_ERROR"


class TestListAddons:
    """附加服务列表"""

    def test_search_and_range(self, client: TestClient, auth_headers):
        """关键字搜索与价格区间筛选"""
        for name, price in [("Breakfast", 10), ("Dinner", 30), ("Brunch", 18)]:
            client.post("/api/addons", json={"addon_name": name, "price": price}, headers=auth_headers)

        response = client.get("/api/addons?search=br", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Addon list retrieved successfully"
        assert [i["addon_name"] for i in body["data"]["items"]] == ["Breakfast", "Brunch"]

        response = client.get("/api/addons", params={"search[price]": "15-40"}, headers=auth_headers)
        assert [i["addon_name"] for i in response.json()["data"]["items"]] == ["Brunch", "Dinner"]

    def test_empty_list_meta(self, client: TestClient, auth_headers):
        """非法分页参数回退默认值"""
        response = client.get("/api/addons?page=abc&limit=-1", headers=auth_headers)
        assert response.json()["data"]["meta"] == {"page": 1, "limit": 10, "total": 0, "total_pages": 1}


class TestUpdateAddon:

    def test_update_own_name(self, client: TestClient, auth_headers, sample_addon):
        """保持原名称更新价格"""
        response = client.put(f"/api/addons/{sample_addon.id}",
                              json={"addon_name": "Breakfast", "price": 12.5},
                              headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["price"] == 12.5

    def test_update_conflict(self, client: TestClient, auth_headers, sample_addon):
        """改名与其它附加服务重复返回 409"""
        other = client.post("/api/addons", json={"addon_name": "Dinner", "price": 20},
                            headers=auth_headers).json()["data"]
        response = client.put(f"/api/addons/{other['id']}",
                              json={"addon_name": "BREAKFAST", "price": 20},
                              headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["errors"][0] == "DUPLICATE_KEY"

    def test_update_missing(self, client: TestClient, auth_headers):
        """更新不存在的附加服务返回 404"""
        response = client.put("/api/addons/missing", json={"addon_name": "X", "price": 1},
                              headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Addon not found"


class TestDeleteAddon:

    def test_delete(self, client: TestClient, auth_headers, sample_addon):
        """删除附加服务"""
        response = client.delete(f"/api/addons/{sample_addon.id}", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Addon deleted successfully"
        assert body["data"] is None

        assert client.get(f"/api/addons/{sample_addon.id}", headers=auth_headers).status_code == 404

    def test_delete_used_in_booking(self, client: TestClient, auth_headers, db_session,
                                    sample_addon, sample_guest, sample_payment_status):
        """被预订使用的附加服务不能删除"""
        booking = Booking(guest_id=sample_guest.id, payment_status_id=sample_payment_status.id,
                          checkin_date=date(2026, 1, 10), checkout_date=date(2026, 1, 12))
        db_session.add(booking)
        db_session.flush()
        db_session.add(BookingAddon(booking_id=booking.id, addon_id=sample_addon.id, quantity=2))
        db_session.commit()

        response = client.delete(f"/api/addons/{sample_addon.id}", headers=auth_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Cannot delete addon that is used in bookings"
        assert body["errors"][0] == "CONFLICT_IN_USE"


class TestBulkAddons:
    """批量端点"""

    def test_bulk_create(self, client: TestClient, auth_headers):
        """批量创建附加服务"""
        response = client.post("/api/addons/bulk", json={"items": [
            {"addon_name": "Breakfast", "price": 10},
            {"addon_name": "Dinner", "price": 25},
        ]}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["message"] == "Addons created successfully"
        assert len(response.json()["data"]) == 2

    def test_bulk_create_duplicate_in_batch(self, client: TestClient, auth_headers):
        """批内名称重复整体失败"""
        response = client.post("/api/addons/bulk", json={"items": [
            {"addon_name": "Breakfast", "price": 10},
            {"addon_name": "breakfast", "price": 25},
        ]}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["errors"][0] == "VALIDATION_ERROR"
        assert client.get("/api/addons", headers=auth_headers).json()["data"]["meta"]["total"] == 0

    def test_bulk_update(self, client: TestClient, auth_headers, sample_addon):
        """批量更新附加服务"""
        response = client.put("/api/addons/bulk", json={"items": [
            {"id": sample_addon.id, "addon_name": "Full Breakfast", "price": 15},
        ]}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"][0]["addon_name"] == "Full Breakfast"

    def test_bulk_update_conflict(self, client: TestClient, auth_headers, sample_addon):
        """批量改名与已有记录重复返回 409"""
        other = client.post("/api/addons", json={"addon_name": "Dinner", "price": 20},
                            headers=auth_headers).json()["data"]
        response = client.put("/api/addons/bulk", json={"items": [
            {"id": other["id"], "addon_name": "breakfast", "price": 20},
        ]}, headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["message"] == "Name conflicts found"

    def test_bulk_delete(self, client: TestClient, auth_headers, sample_addon):
        """批量删除返回删除数量"""
        response = client.request("DELETE", "/api/addons/bulk", json={"ids": [sample_addon.id]},
                                  headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"] == {"deleted_count": 1}

    def test_bulk_delete_requires_ids(self, client: TestClient, auth_headers):
        """ids 不能为空"""
        response = client.request("DELETE", "/api/addons/bulk", json={"ids": []}, headers=auth_headers)
        assert response.status_code == 400
