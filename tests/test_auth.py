import pytest
from itsdangerous import URLSafeTimedSerializer

from craftstore.core.errors import TooManyRequestsError
from craftstore.core.rate_limit import RateLimiter
from craftstore.core.security import TOKEN_SALT, decode_token, issue_token


def _register(client, email="new@example.com", password="secret-pass"):
    return client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "name": "Nima Sherpa", "district": "Lalitpur"},
    )


def test_register_then_use_token(client):
    response = _register(client, email="New@Example.com")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["role"] == "customer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["district"] == "Lalitpur"


def test_duplicate_registration_conflicts(client):
    _register(client)
    response = _register(client)
    assert response.status_code == 409
    assert response.json()["code"] == "ConflictError"


def test_customer_login(client):
    _register(client)

    ok = client.post("/api/auth/customer-login", json={"email": "new@example.com", "password": "secret-pass"})
    wrong = client.post("/api/auth/customer-login", json={"email": "new@example.com", "password": "nope"})

    assert ok.status_code == 200
    assert decode_token(ok.json()["token"]).role == "customer"
    assert wrong.status_code == 401


def test_admin_login_is_only_for_admins(client, admin_user):
    _register(client)

    admin = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "admin-password"})
    customer = client.post("/api/auth/login", json={"email": "new@example.com", "password": "secret-pass"})

    assert admin.status_code == 200
    assert admin.json()["user"]["role"] == "admin"
    assert customer.status_code == 401


def test_repeated_failed_logins_are_throttled(client):
    for _ in range(5):
        response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "x"})
        assert response.status_code == 401

    blocked = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "x"})

    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1


def test_profile_update(client, customer_headers):
    response = client.put(
        "/api/auth/profile",
        json={"phone": "9800000002", "road": "  Jhamsikhel   Road ", "additionalLandmark": "Near the stupa"},
        headers=customer_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["phone"] == "9800000002"
    assert body["road"] == "Jhamsikhel Road"
    assert body["name"] == "Bina Shrestha"


def test_tampered_and_foreign_tokens_are_rejected(client, customer_user):
    token = issue_token(customer_user.id, customer_user.email, "customer")
    forged = URLSafeTimedSerializer("another-secret-key-with-enough-length", salt=TOKEN_SALT).dumps(
        {"id": customer_user.id, "email": customer_user.email, "role": "admin"}
    )

    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}x"}).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"}).status_code == 401
    assert client.get("/api/auth/me").status_code == 401


def test_customer_token_cannot_reach_admin_routes(client, customer_headers):
    response = client.get("/api/admin/orders", headers=customer_headers)
    assert response.status_code == 403
    assert response.json()["code"] == "ForbiddenError"


def test_rate_limiter_counts_per_key_and_resets():
    limiter = RateLimiter(max_requests=2, window_seconds=60)

    limiter.check("admin:1.2.3.4:a@example.com")
    limiter.check("admin:1.2.3.4:a@example.com")
    with pytest.raises(TooManyRequestsError) as raised:
        limiter.check("admin:1.2.3.4:a@example.com")
    assert 0 < raised.value.retry_after <= 60

    limiter.check("admin:1.2.3.4:b@example.com")
    limiter.reset("admin:1.2.3.4:a@example.com")
    limiter.check("admin:1.2.3.4:a@example.com")


def test_rate_limiter_forgets_idle_keys():
    now = [0.0]
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=lambda: now[0])

    for index in range(50):
        limiter.check(f"customer:1.2.3.4:user{index}@example.com")
    assert limiter.tracked_keys() == 50

    now[0] += 61
    limiter.check("customer:1.2.3.4:late@example.com")

    assert limiter.tracked_keys() == 1
