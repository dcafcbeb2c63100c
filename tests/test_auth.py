import pytest

from db_models.user import UserRole


@pytest.mark.anyio
async def test_login_with_form_data(async_client, users):
    """Test OAuth2 compatible login endpoint"""
    resp = await async_client.post(
        "/api/v1/auth/login",
        data={"username": "admin@test.com", "password": "adminpass"},
        headers={"Content-Type": "application/x-www-form-urlencoded"}
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert "access_token" in data
    assert "refresh_token" in data
    assert data["token_type"] == "bearer"


@pytest.mark.anyio
async def test_login_with_json(async_client, users):
    resp = await async_client.post(
        "/api/v1/auth/login/json",
        json={"email": "customer@test.com", "password": "customerpass"}
    )
    assert resp.status_code == 200, resp.text
    assert "access_token" in resp.json()


@pytest.mark.anyio
async def test_login_invalid_credentials(async_client, users):
    resp = await async_client.post(
        "/api/v1/auth/login",
        data={"username": "admin@test.com", "password": "wrongpassword"},
        headers={"Content-Type": "application/x-www-form-urlencoded"}
    )
    assert resp.status_code == 401
    assert "Incorrect email or password" in resp.json()["detail"]


@pytest.mark.anyio
async def test_login_nonexistent_user(async_client, users):
    resp = await async_client.post(
        "/api/v1/auth/login",
        data={"username": "nobody@test.com", "password": "password"},
        headers={"Content-Type": "application/x-www-form-urlencoded"}
    )
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_refresh_token(async_client, users):
    resp = await async_client.post(
        "/api/v1/auth/login/json",
        json={"email": "reviewer@test.com", "password": "reviewerpass"}
    )
    assert resp.status_code == 200, resp.text
    refresh_token = resp.json()["refresh_token"]

    resp = await async_client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert resp.status_code == 200, resp.text
    assert "access_token" in resp.json()


@pytest.mark.anyio
async def test_access_token_is_not_a_refresh_token(async_client, users):
    resp = await async_client.post(
        "/api/v1/auth/login/json",
        json={"email": "admin@test.com", "password": "adminpass"}
    )
    access_token = resp.json()["access_token"]

    resp = await async_client.post("/api/v1/auth/refresh", json={"refresh_token": access_token})
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_get_me(async_client, customer_headers):
    resp = await async_client.get("/api/v1/auth/me", headers=customer_headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["email"] == "customer@test.com"
    assert data["role"] == UserRole.CUSTOMER.value


@pytest.mark.anyio
async def test_get_me_without_token(async_client):
    resp = await async_client.get("/api/v1/auth/me")
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_get_me_with_invalid_token(async_client):
    resp = await async_client.get(
        "/api/v1/auth/me",
        headers={"Authorization": "Bearer invalid-token"}
    )
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_change_password(async_client, users, customer_headers):
    resp = await async_client.post(
        "/api/v1/auth/me/password",
        json={"current_password": "wrongpass", "new_password": "newpassword"},
        headers=customer_headers,
    )
    assert resp.status_code == 400

    resp = await async_client.post(
        "/api/v1/auth/me/password",
        json={"current_password": "customerpass", "new_password": "newpassword"},
        headers=customer_headers,
    )
    assert resp.status_code == 200, resp.text

    resp = await async_client.post(
        "/api/v1/auth/login/json",
        json={"email": "customer@test.com", "password": "newpassword"}
    )
    assert resp.status_code == 200, resp.text


# --- User management ---

@pytest.mark.anyio
async def test_list_users_admin_only(async_client, admin_headers, reviewer_headers):
    resp = await async_client.get("/api/v1/auth/users", headers=admin_headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["total"] == 3
    assert {user["role"] for user in data["users"]} == {role.value for role in UserRole}

    resp = await async_client.get("/api/v1/auth/users", headers=reviewer_headers)
    assert resp.status_code == 403


@pytest.mark.anyio
async def test_create_user(async_client, admin_headers):
    payload = {
        "email": "suzuki@test.com",
        "password": "password123",
        "full_name": "鈴木",
        "role": "REVIEWER",
    }
    resp = await async_client.post("/api/v1/auth/users", json=payload, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    assert resp.json()["role"] == "REVIEWER"

    # Same email again
    resp = await async_client.post("/api/v1/auth/users", json=payload, headers=admin_headers)
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_create_user_with_unknown_role(async_client, admin_headers):
    resp = await async_client.post(
        "/api/v1/auth/users",
        json={"email": "x@test.com", "password": "password123", "full_name": "X", "role": "SUPERVISOR"},
        headers=admin_headers,
    )
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_update_and_deactivate_user(async_client, users, admin_headers):
    customer = users[UserRole.CUSTOMER]

    resp = await async_client.put(
        f"/api/v1/auth/users/{customer.id}",
        json={"full_name": "田中 太郎", "role": "REVIEWER"},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["full_name"] == "田中 太郎"
    assert resp.json()["role"] == "REVIEWER"

    resp = await async_client.delete(f"/api/v1/auth/users/{customer.id}", headers=admin_headers)
    assert resp.status_code == 200, resp.text

    resp = await async_client.post(
        "/api/v1/auth/login/json",
        json={"email": "customer@test.com", "password": "customerpass"}
    )
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_admin_cannot_deactivate_self(async_client, users, admin_headers):
    admin = users[UserRole.ADMIN]
    resp = await async_client.delete(f"/api/v1/auth/users/{admin.id}", headers=admin_headers)
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_update_unknown_user(async_client, admin_headers):
    resp = await async_client.put(
        "/api/v1/auth/users/9999", json={"is_active": False}, headers=admin_headers
    )
    assert resp.status_code == 404


# --- Cache-only mode ---

@pytest.mark.anyio
async def test_token_claims_stand_in_without_user_table(offline_client, offline_customer_headers):
    resp = await offline_client.get("/api/v1/auth/me", headers=offline_customer_headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["id"] == 42
    assert data["full_name"] == "Field Customer"
    assert data["role"] == "CUSTOMER"


@pytest.mark.anyio
async def test_user_management_unavailable_without_user_table(offline_client):
    resp = await offline_client.post(
        "/api/v1/auth/login/json",
        json={"email": "admin@test.com", "password": "adminpass"}
    )
    assert resp.status_code == 503
