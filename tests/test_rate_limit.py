import pytest

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db, limiter


class LimitedConfig(TestConfig):
    RATELIMIT_ENABLED = True


@pytest.fixture
def limited_client():
    app = create_app(LimitedConfig)
    with app.app_context():
        limiter.reset()
    yield app.test_client()
    with app.app_context():
        limiter.reset()
        db.session.remove()
        db.drop_all()


def bad_login(client, path="/api/user/login"):
    return client.post(path, json={"email": "ghost@shop.com", "password": "Wrong#1234"})


def test_login_is_limited_per_address(limited_client):
    for _ in range(16):
        assert bad_login(limited_client).status_code == 401

    r = bad_login(limited_client)

    assert r.status_code == 429
    body = r.get_json()
    assert body["success"] is False
    assert body["message"] == "Too many login attempts, please try again later"


def test_admin_login_shares_the_login_budget(limited_client):
    for _ in range(16):
        bad_login(limited_client)

    assert bad_login(limited_client, "/api/user/admin").status_code == 429


def test_password_reset_is_limited(limited_client):
    reset = {"token": "nope", "password": "Secret#123", "confirm_password": "Secret#123"}
    for _ in range(16):
        r = limited_client.post("/api/user/reset-password", json=reset)
        assert r.status_code == 400

    r = limited_client.post("/api/user/forgot-password", json={"email": "ghost@shop.com"})

    assert r.status_code == 429
    assert r.get_json()["message"] == "Too many password reset attempts, please try again later"


def test_limits_are_off_in_tests_by_default(client):
    for _ in range(20):
        assert bad_login(client).status_code == 401
