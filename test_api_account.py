EMAIL = "learner@example.com"
PASSWORD = "correct-horse"


def test_signup_starts_session(client):
    response = client.post(
        "/api/user-auth/signup",
        json={"email": EMAIL, "password": PASSWORD, "firstName": "Ada", "lastName": "Lovelace"},
    )
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["email"] == EMAIL
    assert user["firstName"] == "Ada"
    assert user["role"] == "user"

    response = client.get("/api/user-auth/check")
    assert response.json() == {"authenticated": True, "userId": user["id"]}


def test_duplicate_signup(logged_in_client):
    response = logged_in_client.post("/api/user-auth/signup", json={"email": EMAIL, "password": PASSWORD})
    assert response.status_code == 409
    assert response.json() == {"error": "User with this email already exists"}


def test_short_password_rejected(client):
    response = client.post("/api/user-auth/signup", json={"email": "short@example.com", "password": "abc"})
    assert response.status_code == 400
    assert "at least 8 characters" in response.json()["error"]


def test_login_and_logout(logged_in_client):
    client = logged_in_client
    client.post("/api/user-auth/logout")
    assert client.get("/api/user-auth/check").json() == {"authenticated": False, "userId": None}
    assert client.get("/api/user-auth/me").status_code == 401

    response = client.post("/api/user-auth/login", json={"email": EMAIL, "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}

    response = client.post("/api/user-auth/login", json={"email": EMAIL, "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["lastLogin"] is not None
    assert client.get("/api/user-auth/me").json()["user"]["email"] == EMAIL


def test_email_code_account_cannot_use_password_login(client, mailer):
    client.post("/api/auth/signup", json={"email": "coded@example.com", "name": "Coded"})
    client.post("/api/auth/verify-email", json={"email": "coded@example.com", "code": mailer.last_code()})

    response = client.post("/api/user-auth/login", json={"email": "coded@example.com", "password": PASSWORD})
    assert response.status_code == 401


def test_change_password(logged_in_client):
    client = logged_in_client
    response = client.put("/api/user-auth/password", json={"currentPassword": "nope-nope", "newPassword": "new-password"})
    assert response.status_code == 401

    response = client.put("/api/user-auth/password", json={"currentPassword": PASSWORD, "newPassword": "short"})
    assert response.status_code == 400

    response = client.put("/api/user-auth/password", json={"currentPassword": PASSWORD, "newPassword": "new-password"})
    assert response.status_code == 200

    client.post("/api/user-auth/logout")
    assert client.post("/api/user-auth/login", json={"email": EMAIL, "password": PASSWORD}).status_code == 401
    assert client.post("/api/user-auth/login", json={"email": EMAIL, "password": "new-password"}).status_code == 200


def test_update_profile(logged_in_client):
    response = logged_in_client.put("/api/user-auth/update-profile", json={"firstName": "Augusta", "lastName": "King"})
    assert response.status_code == 200
    user = logged_in_client.get("/api/user-auth/me").json()["user"]
    assert user["firstName"] == "Augusta"
    assert user["lastName"] == "King"


def test_update_profile_requires_first_name(logged_in_client):
    response = logged_in_client.put("/api/user-auth/update-profile", json={"firstName": ""})
    assert response.status_code == 422


def test_session_unlocks_practice_routes(logged_in_client):
    assert logged_in_client.get("/api/progress").status_code == 200
    assert logged_in_client.get("/api/favourites").status_code == 200
