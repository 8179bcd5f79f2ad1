from conftest import PASSWORD, auth_headers, make_user


def register(client, email="new@example.com", phone="0909555555"):
    return client.post("/auth/register", json={
        "email": email,
        "password": "matkhau-123",
        "name": "Người Mới",
        "phone": phone,
    })


def test_register_creates_customer(client):
    r = register(client)

    assert r.status_code == 201
    body = r.json()
    assert body["email"] == "new@example.com"
    assert body["role"] == "CUSTOMER"
    assert "password_hash" not in body


def test_register_duplicate_email_or_phone(client):
    assert register(client).status_code == 201
    assert register(client, phone="0909000000").status_code == 409
    assert register(client, email="other@example.com").status_code == 409


def test_register_short_password(client):
    r = client.post("/auth/register", json={"email": "x@example.com", "password": "short", "name": "X"})
    assert r.status_code == 422


def test_login_with_email_or_phone(client, customer):
    r = client.post("/auth/login", data={"username": customer.email, "password": PASSWORD})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"

    r = client.post("/auth/login", data={"username": "0909111111", "password": PASSWORD})
    assert r.status_code == 200

    token = r.json()["access_token"]
    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == customer.email


def test_login_wrong_password(client, customer):
    r = client.post("/auth/login", data={"username": customer.email, "password": "wrong-password"})
    assert r.status_code == 401


def test_deactivated_user_cannot_login_or_use_token(client, session, customer):
    headers = auth_headers(customer)
    customer.is_active = False
    session.add(customer)
    session.commit()

    r = client.post("/auth/login", data={"username": customer.email, "password": PASSWORD})
    assert r.status_code == 401
    assert client.get("/me", headers=headers).status_code == 401


def test_me_requires_token(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_update_me(client, session, customer):
    make_user(session, "taken@example.com", phone="0909777777")
    headers = auth_headers(customer)

    r = client.patch("/me", json={"name": "Tên Mới"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Tên Mới"

    r = client.patch("/me", json={"phone": "0909777777"}, headers=headers)
    assert r.status_code == 409
