import time

from jose import jwt

from conftest import PASSWORD, parse_dt
from gtd_api.models import new_user
from gtd_api.security import JWT_ALGORITHM, create_access_token, hash_password, verify_password
from gtd_api.settings import get_settings


def register_payload(email="ada@example.com", password=PASSWORD, display_name="Ada"):
    return {"email": email, "password": password, "displayName": display_name}


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        data = res.json()
        assert data["status"] == "healthy"
        assert data["backend"] in ("memory", "sqlite")
        parse_dt(data["timestamp"])


class TestRegisterAndLogin:
    def test_register_returns_token_and_user(self, client):
        res = client.post("/api/auth/register", json=register_payload(email="Ada@Example.com"))
        assert res.status_code == 201
        body = res.json()
        assert body["token"]
        assert body["user"]["email"] == "ada@example.com"
        assert body["user"]["displayName"] == "Ada"
        assert "passwordHash" not in body["user"]

    def test_duplicate_email_is_conflict(self, client):
        assert client.post("/api/auth/register", json=register_payload()).status_code == 201
        res = client.post("/api/auth/register", json=register_payload(email="ADA@example.com"))
        assert res.status_code == 409
        assert res.json()["error"] == "Conflict"

    def test_register_validation(self, client):
        res = client.post(
            "/api/auth/register",
            json=register_payload(email="not-an-email", password="short", display_name="  "),
        )
        assert res.status_code == 400
        body = res.json()
        assert body["error"] == "ValidationError"
        assert set(body["errors"]) == {"email", "password", "displayName"}

    def test_malformed_emails_are_rejected(self, client):
        for bad in ("bob@example..com", "bob@", "@example.com", "bob example@example.com"):
            res = client.post("/api/auth/register", json=register_payload(email=bad))
            assert res.status_code == 400, bad
            assert "email" in res.json()["errors"]

    def test_password_needs_digit_and_both_cases(self, client):
        for weak in ("alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"):
            res = client.post("/api/auth/register", json=register_payload(password=weak))
            assert res.status_code == 400, weak
            assert "password" in res.json()["errors"]

    def test_login_success(self, client):
        client.post("/api/auth/register", json=register_payload())
        res = client.post("/api/auth/login", json={"email": "ADA@example.com", "password": PASSWORD})
        assert res.status_code == 200
        assert res.json()["user"]["email"] == "ada@example.com"

    def test_login_failures_share_one_message(self, client):
        client.post("/api/auth/register", json=register_payload())
        wrong_password = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "Wrong1234"})
        unknown_email = client.post("/api/auth/login", json={"email": "bob@example.com", "password": PASSWORD})
        assert wrong_password.status_code == 401
        assert unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json()
        assert wrong_password.json()["error"] == "Unauthorized"


class TestCurrentUser:
    def test_me(self, client):
        token = client.post("/api/auth/register", json=register_payload()).json()["token"]
        res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200
        body = res.json()
        assert body["email"] == "ada@example.com"
        assert body["displayName"] == "Ada"
        parse_dt(body["createdAt"])

    def test_missing_token(self, client):
        res = client.get("/api/auth/me")
        assert res.status_code == 401
        assert res.json()["error"] == "Unauthorized"
        assert res.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        res = client.get("/api/tasks", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401

    def test_expired_token(self, client):
        settings = get_settings()
        user = client.post("/api/auth/register", json=register_payload()).json()["user"]
        now = int(time.time())
        token = jwt.encode(
            {"sub": user["id"], "iss": settings.jwt_issuer, "iat": now - 120, "exp": now - 60},
            settings.jwt_secret,
            algorithm=JWT_ALGORITHM,
        )
        res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_token_signed_with_other_secret(self, client):
        settings = get_settings()
        user = client.post("/api/auth/register", json=register_payload()).json()["user"]
        now = int(time.time())
        token = jwt.encode(
            {"sub": user["id"], "iss": settings.jwt_issuer, "iat": now, "exp": now + 60},
            settings.jwt_secret + "-other",
            algorithm=JWT_ALGORITHM,
        )
        assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401

    def test_token_for_unknown_user(self, client):
        ghost = new_user("ghost@example.com", "x", "Ghost")
        token = create_access_token(ghost, get_settings())
        res = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.json()["message"] == "User not found"


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("Secret123", rounds=4)
        assert hashed != "Secret123"
        assert verify_password("Secret123", hashed)
        assert not verify_password("Secret124", hashed)

    def test_long_passwords_are_not_truncated(self):
        base = "A1" + "x" * 100
        hashed = hash_password(base + "a", rounds=4)
        assert not verify_password(base + "b", hashed)

    def test_malformed_hash(self):
        assert verify_password("Secret123", "not-a-bcrypt-hash") is False
