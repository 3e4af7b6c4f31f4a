"""
Tests for BM Jaya Printing API endpoints.

Tests cover:
- Health check
- Login and bearer token enforcement
- Order management (create, get, update, delete, files)
- Order listing, search and pagination
- Dashboard statistics
- Employee management
"""

import os
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import jwt

from conftest import TEST_SECRET_KEY

HUGE_ID = 99999999999999999999


def upload_path(name):
    return Path(os.environ["BMJAYA_UPLOAD_DIR"]) / name


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestLogin:
    """Tests for /api/login and token checks."""

    def test_admin_login_returns_token(self, client, admin):
        response = client.post("/api/login", json=admin)
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["user"]["role"] == "admin"
        claims = jwt.decode(data["token"], TEST_SECRET_KEY, algorithms=["HS256"])
        assert claims["type"] == "admin"
        assert claims["username"] == "admin"
        lifetime = claims["exp"] - claims["iat"]
        assert lifetime == 360 * 24 * 3600

    def test_wrong_password_is_rejected(self, client, admin):
        response = client.post("/api/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_unknown_user_is_rejected(self, client, admin):
        response = client.post("/api/login", json={"username": "ghost", "password": "x"})
        assert response.status_code == 401

    def test_missing_token_returns_401(self, client):
        response = client.get("/api/orders")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"

    def test_invalid_token_returns_403(self, client):
        response = client.get("/api/orders", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 403
        assert response.json()["message"] == "Invalid token"

    def test_token_signed_with_other_key_returns_403(self, client):
        token = jwt.encode(
            {"id": 1, "username": "admin", "role": "admin", "type": "admin"}, "other-key", algorithm="HS256"
        )
        response = client.get("/api/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    def test_expired_token_returns_403(self, client):
        token = jwt.encode(
            {
                "id": 1,
                "username": "admin",
                "role": "admin",
                "type": "admin",
                "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            },
            TEST_SECRET_KEY,
            algorithm="HS256",
        )
        response = client.get("/api/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    def test_auth_is_checked_before_validation(self, client):
        response = client.post("/api/employees", json={})
        assert response.status_code == 401


class TestOrders:
    """Tests for order CRUD endpoints."""

    def test_create_order_computes_total_and_number(self, client, auth_headers, create_order):
        created = create_order(jumlah_xs=0, jumlah_s=2, jumlah_m=3, jumlah_l=0, total_order=99)
        assert created["success"] is True
        assert created["noOrder"] == "BM-00001"

        response = client.get(f"/api/orders/{created['orderId']}", headers=auth_headers)
        order = response.json()["order"]
        assert order["total_order"] == 5
        assert order["jumlah_s"] == 2
        assert order["status"] == "proses"

    def test_order_number_continues_from_counter(self, database, create_order):
        with database.connection() as conn:
            conn.execute("UPDATE order_counter SET current_number = 41 WHERE id = 1")
        assert create_order()["noOrder"] == "BM-00042"
        assert create_order()["noOrder"] == "BM-00043"

    def test_missing_customer_name_is_rejected(self, client, auth_headers, database):
        response = client.post("/api/orders", data={"nama_pemesan": "  "}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert database.current_order_counter() == 0

    def test_invalid_size_is_rejected(self, client, auth_headers):
        response = client.post(
            "/api/orders", data={"nama_pemesan": "Budi", "jumlah_m": "abc"}, headers=auth_headers
        )
        assert response.status_code == 400
        assert "jumlah_m" in response.json()["message"]

    def test_completion_date_marks_order_done(self, client, auth_headers, create_order):
        created = create_order(tanggal_selesai="2024-05-10")
        order = client.get(f"/api/orders/{created['orderId']}", headers=auth_headers).json()["order"]
        assert order["status"] == "selesai"

    def test_get_nonexistent_order(self, client, auth_headers):
        response = client.get("/api/orders/999", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Order not found"

    def test_ids_beyond_integer_range_are_not_found(self, client, auth_headers):
        url = f"/api/orders/{HUGE_ID}"
        assert client.get(url, headers=auth_headers).status_code == 404
        assert client.put(url, data={"nama_pemesan": "X"}, headers=auth_headers).status_code == 404
        assert client.delete(url, headers=auth_headers).status_code == 404
        assert client.get(f"{url}/production", headers=auth_headers).status_code == 404
        assert client.post(f"{url}/production/init", headers=auth_headers).status_code == 404
        assert client.put(f"{url}/production/1", data={"status": "selesai"}, headers=auth_headers).status_code == 404
        assert client.delete(f"{url}/production/1/photo/a.png", headers=auth_headers).status_code == 404

    def test_size_quantity_is_bounded(self, client, auth_headers, database):
        response = client.post(
            "/api/orders", data={"nama_pemesan": "Budi", "jumlah_m": str(HUGE_ID)}, headers=auth_headers
        )
        assert response.status_code == 400
        assert database.current_order_counter() == 0

    def test_create_order_with_files(self, client, auth_headers, create_order, sample_png):
        created = create_order(
            files={
                "desain_file": ("desain.PNG", sample_png, "image/png"),
                "pola_file": ("pola.jpg", sample_png, "image/jpeg"),
            }
        )
        order = client.get(f"/api/orders/{created['orderId']}", headers=auth_headers).json()["order"]
        assert order["desain_file"].endswith(".png")
        assert order["pola_file"].endswith(".jpg")
        assert upload_path(order["desain_file"]).read_bytes() == sample_png

        served = client.get(f"/uploads/{order['desain_file']}")
        assert served.status_code == 200
        assert served.content == sample_png

    def test_non_image_upload_is_rejected(self, client, auth_headers):
        response = client.post(
            "/api/orders",
            data={"nama_pemesan": "Budi"},
            files={"desain_file": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Only image files are allowed"

    def test_oversized_upload_is_rejected_before_storage(self, client, auth_headers, database):
        before = set(os.listdir(os.environ["BMJAYA_UPLOAD_DIR"]))
        response = client.post(
            "/api/orders",
            data={"nama_pemesan": "Budi"},
            files={"desain_file": ("big.png", b"\x00" * (500 * 1024 + 1), "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 413
        assert set(os.listdir(os.environ["BMJAYA_UPLOAD_DIR"])) == before
        assert database.current_order_counter() == 0

    def test_update_order_keeps_and_replaces_files(self, client, auth_headers, create_order, sample_png):
        created = create_order(
            files={
                "desain_file": ("a.png", sample_png, "image/png"),
                "pola_file": ("b.png", sample_png, "image/png"),
            }
        )
        order_id = created["orderId"]
        original = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["order"]

        response = client.put(
            f"/api/orders/{order_id}",
            data={"nama_pemesan": "Budi Santoso", "jumlah_l": "4", "jumlah_xl": "1"},
            files={"desain_file": ("c.png", sample_png, "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Order updated successfully"

        updated = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["order"]
        assert updated["nama_pemesan"] == "Budi Santoso"
        assert updated["total_order"] == 5
        assert updated["no_order"] == original["no_order"]
        assert updated["pola_file"] == original["pola_file"]
        assert updated["desain_file"] != original["desain_file"]
        assert not upload_path(original["desain_file"]).exists()
        assert upload_path(updated["desain_file"]).exists()
        assert upload_path(updated["pola_file"]).exists()

    def test_blank_order_date_keeps_stored_date_on_update(self, client, auth_headers, create_order):
        order_id = create_order(tanggal_order="2024-03-15")["orderId"]

        response = client.put(
            f"/api/orders/{order_id}", data={"nama_pemesan": "Budi", "tanggal_order": ""}, headers=auth_headers
        )
        assert response.status_code == 200
        order = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["order"]
        assert order["tanggal_order"] == "2024-03-15"

        client.put(f"/api/orders/{order_id}", data={"nama_pemesan": "Budi"}, headers=auth_headers)
        order = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["order"]
        assert order["tanggal_order"] == "2024-03-15"

    def test_missing_order_date_defaults_to_today(self, client, auth_headers):
        response = client.post("/api/orders", data={"nama_pemesan": "Budi"}, headers=auth_headers)
        order_id = response.json()["orderId"]
        order = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["order"]
        assert order["tanggal_order"] == date.today().isoformat()

    def test_update_nonexistent_order(self, client, auth_headers, sample_png):
        before = set(os.listdir(os.environ["BMJAYA_UPLOAD_DIR"]))
        response = client.put(
            "/api/orders/999",
            data={"nama_pemesan": "X"},
            files={"desain_file": ("c.png", sample_png, "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 404
        assert set(os.listdir(os.environ["BMJAYA_UPLOAD_DIR"])) == before

    def test_delete_order_removes_files_and_steps(self, client, auth_headers, create_order, database, sample_png):
        created = create_order(files={"desain_file": ("a.png", sample_png, "image/png")})
        order_id = created["orderId"]
        order = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["order"]

        client.post(f"/api/orders/{order_id}/production/init", headers=auth_headers)
        client.put(
            f"/api/orders/{order_id}/production/1",
            data={"status": "selesai"},
            files=[("photos", ("p.png", sample_png, "image/png"))],
            headers=auth_headers,
        )
        photo = client.get(f"/api/orders/{order_id}/production/1", headers=auth_headers).json()["step"]["photos"][0]

        response = client.delete(f"/api/orders/{order_id}", headers=auth_headers)
        assert response.status_code == 200

        assert client.get(f"/api/orders/{order_id}", headers=auth_headers).status_code == 404
        assert not upload_path(order["desain_file"]).exists()
        assert not upload_path(photo).exists()
        with database.connection() as conn:
            steps = conn.execute("SELECT COUNT(*) FROM production_steps WHERE order_id = ?", (order_id,)).fetchone()[0]
            photos = conn.execute("SELECT COUNT(*) FROM production_step_photos").fetchone()[0]
        assert steps == 0
        assert photos == 0

    def test_delete_nonexistent_order(self, client, auth_headers):
        response = client.delete("/api/orders/999", headers=auth_headers)
        assert response.status_code == 404

    def test_delete_order_survives_missing_file(self, client, auth_headers, create_order, sample_png):
        created = create_order(files={"desain_file": ("a.png", sample_png, "image/png")})
        order = client.get(f"/api/orders/{created['orderId']}", headers=auth_headers).json()["order"]
        upload_path(order["desain_file"]).unlink()

        response = client.delete(f"/api/orders/{created['orderId']}", headers=auth_headers)
        assert response.status_code == 200


class TestOrderListing:
    """Tests for GET /api/orders pagination and search."""

    def test_pagination(self, client, auth_headers, create_order):
        for index in range(12):
            create_order(nama_pemesan=f"Pelanggan {index}")

        first = client.get("/api/orders", params={"page": 1}, headers=auth_headers).json()
        assert len(first["orders"]) == 10
        assert first["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalItems": 12,
            "itemsPerPage": 10,
        }
        # Newest first
        assert first["orders"][0]["no_order"] == "BM-00012"

        second = client.get("/api/orders", params={"page": 2}, headers=auth_headers).json()
        assert [order["no_order"] for order in second["orders"]] == ["BM-00002", "BM-00001"]

    def test_page_past_the_end_is_empty(self, client, auth_headers, create_order):
        create_order()
        response = client.get("/api/orders", params={"page": 7}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["orders"] == []
        assert response.json()["pagination"]["totalItems"] == 1

    def test_page_beyond_integer_range_is_empty(self, client, auth_headers, create_order):
        create_order()
        response = client.get("/api/orders", params={"page": "99999999999999999999"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["orders"] == []
        assert response.json()["pagination"]["totalItems"] == 1

        employees = client.get("/api/employees", params={"page": "99999999999999999999"}, headers=auth_headers)
        assert employees.status_code == 200
        assert employees.json()["employees"] == []

    def test_invalid_page_falls_back_to_first(self, client, auth_headers, create_order):
        create_order()
        response = client.get("/api/orders", params={"page": "abc"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["pagination"]["currentPage"] == 1
        assert len(response.json()["orders"]) == 1

    def test_search_by_name_is_case_insensitive(self, client, auth_headers, create_order):
        create_order(nama_pemesan="Toko Sinar Jaya")
        create_order(nama_pemesan="Budi")

        result = client.get("/api/orders", params={"search": "sinar"}, headers=auth_headers).json()
        assert [order["nama_pemesan"] for order in result["orders"]] == ["Toko Sinar Jaya"]
        assert result["pagination"]["totalItems"] == 1

    def test_search_by_order_number(self, client, auth_headers, create_order):
        create_order()
        create_order()
        result = client.get("/api/orders", params={"search": "bm-00002"}, headers=auth_headers).json()
        assert [order["no_order"] for order in result["orders"]] == ["BM-00002"]

    def test_search_wildcards_match_literally(self, client, auth_headers, create_order):
        create_order(nama_pemesan="Diskon 50% Club")
        create_order(nama_pemesan="Budi")
        result = client.get("/api/orders", params={"search": "%"}, headers=auth_headers).json()
        assert [order["nama_pemesan"] for order in result["orders"]] == ["Diskon 50% Club"]

    def test_empty_search_matches_unfiltered(self, client, auth_headers, create_order):
        for index in range(3):
            create_order(nama_pemesan=f"Pelanggan {index}")
        plain = client.get("/api/orders", headers=auth_headers).json()
        blank = client.get("/api/orders", params={"search": "   "}, headers=auth_headers).json()
        assert plain == blank


class TestDashboard:
    """Tests for /api/dashboard/stats."""

    def test_stats(self, client, auth_headers, create_order):
        create_order()
        create_order(tanggal_selesai="2024-05-10")
        create_order()

        response = client.get("/api/dashboard/stats", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "stats": {"totalOrders": 3, "todayOrders": 3, "pendingOrders": 2, "completedOrders": 1},
        }

    def test_stats_empty(self, client, auth_headers):
        stats = client.get("/api/dashboard/stats", headers=auth_headers).json()["stats"]
        assert stats == {"totalOrders": 0, "todayOrders": 0, "pendingOrders": 0, "completedOrders": 0}


class TestEmployees:
    """Tests for employee management endpoints."""

    def test_create_and_get_employee(self, client, auth_headers, create_employee):
        employee_id = create_employee("Dede", no_telpon="0812", email="dede@example.com")
        response = client.get(f"/api/employees/{employee_id}", headers=auth_headers)
        assert response.status_code == 200

        employee = response.json()["employee"]
        assert employee["nama"] == "Dede"
        assert employee["status"] == "aktif"
        assert "password" not in employee

    def test_name_is_required(self, client, auth_headers):
        response = client.post("/api/employees", json={"no_telpon": "0812"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Nama karyawan harus diisi"

    def test_duplicate_name_conflicts(self, client, auth_headers, create_employee):
        create_employee("Ecep")
        response = client.post("/api/employees", json={"nama": "Ecep"}, headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["message"] == "Nama karyawan sudah terdaftar"

    def test_duplicate_name_ignores_case(self, client, auth_headers, create_employee):
        create_employee("Budi")
        response = client.post("/api/employees", json={"nama": "budi"}, headers=auth_headers)
        assert response.status_code == 409

    def test_update_employee(self, client, auth_headers, create_employee):
        employee_id = create_employee("Asep")
        response = client.put(
            f"/api/employees/{employee_id}",
            json={"nama": "Asep S", "status": "nonaktif", "email": ""},
            headers=auth_headers,
        )
        assert response.status_code == 200

        employee = client.get(f"/api/employees/{employee_id}", headers=auth_headers).json()["employee"]
        assert employee["nama"] == "Asep S"
        assert employee["status"] == "nonaktif"
        assert employee["email"] is None

    def test_update_to_duplicate_name_conflicts(self, client, auth_headers, create_employee):
        create_employee("Asep")
        other = create_employee("Ujang")
        response = client.put(f"/api/employees/{other}", json={"nama": "Asep"}, headers=auth_headers)
        assert response.status_code == 409

    def test_update_and_delete_unknown_employee(self, client, auth_headers):
        assert client.put("/api/employees/999", json={"nama": "X"}, headers=auth_headers).status_code == 404
        assert client.delete("/api/employees/999", headers=auth_headers).status_code == 404

    def test_employee_ids_beyond_integer_range_are_not_found(self, client, auth_headers):
        url = f"/api/employees/{HUGE_ID}"
        assert client.get(url, headers=auth_headers).status_code == 404
        assert client.put(url, json={"nama": "X"}, headers=auth_headers).status_code == 404
        assert client.delete(url, headers=auth_headers).status_code == 404

    def test_delete_employee(self, client, auth_headers, create_employee):
        employee_id = create_employee("Asep")
        response = client.delete(f"/api/employees/{employee_id}", headers=auth_headers)
        assert response.status_code == 200
        assert client.get(f"/api/employees/{employee_id}", headers=auth_headers).status_code == 404

    def test_list_sorted_and_searchable(self, client, auth_headers, create_employee):
        create_employee("Ujang", no_telpon="0813")
        create_employee("Asep", email="asep@bmjaya.id")
        create_employee("Dede", no_telpon="0812")

        listing = client.get("/api/employees", headers=auth_headers).json()
        assert [employee["nama"] for employee in listing["employees"]] == ["Asep", "Dede", "Ujang"]

        by_phone = client.get("/api/employees", params={"search": "0812"}, headers=auth_headers).json()
        assert [employee["nama"] for employee in by_phone["employees"]] == ["Dede"]

        by_email = client.get("/api/employees", params={"search": "BMJAYA"}, headers=auth_headers).json()
        assert [employee["nama"] for employee in by_email["employees"]] == ["Asep"]
        assert by_email["pagination"]["totalPages"] == 1
