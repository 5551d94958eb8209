from conftest import register


def test_register_returns_user_and_token(client):
    response = client.post("/api/auth/register", json={"username": "farmer", "password": "pw"})

    assert response.status_code == 201
    data = response.json()
    assert data["user"]["username"] == "farmer"
    assert "password" not in data["user"]
    assert data["token_type"] == "bearer"
    assert "access_token=" in response.headers["set-cookie"]


def test_duplicate_username_conflicts(client):
    register(client, "farmer")

    response = client.post("/api/auth/register", json={"username": "farmer", "password": "other"})

    assert response.status_code == 409
    assert response.json() == {"error": "Username already exists"}


def test_blank_credentials_are_rejected(client):
    response = client.post("/api/auth/register", json={"username": "", "password": "pw"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_login_checks_password(client):
    register(client, "farmer", "right-password")

    bad = client.post("/api/auth/login", json={"username": "farmer", "password": "wrong"})
    good = client.post("/api/auth/login", json={"username": "farmer", "password": "right-password"})

    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid username or password"}
    assert good.status_code == 200
    assert good.json()["user"]["username"] == "farmer"


def test_me_requires_authentication(client):
    headers = register(client, "farmer")
    client.cookies.clear()

    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401
    assert client.get("/api/auth/me", headers=headers).json()["username"] == "farmer"


def test_session_cookie_authenticates(client):
    register(client, "farmer")

    assert client.get("/api/auth/me").json()["username"] == "farmer"


def test_logout_clears_cookie(client):
    register(client, "farmer")

    response = client.post("/api/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    cookie = response.headers["set-cookie"]
    assert cookie.startswith("access_token=")
    assert "Max-Age=0" in cookie
