# tests/test_api.py
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from cardlistings.main import app
from conftest import T0

SELLER = {"X-User-Id": "seller-1"}
CRON = {"x-cron-secret": "test-cron-secret"}


@pytest.fixture
def client(db, clock):
    app.state.clock = clock
    app.state.listing_cache.clear()
    app.state.tier_cache.clear()
    with TestClient(app) as c:
        yield c


def create(client, headers=SELLER, **payload):
    body = {"title": "Umbreon VMAX", "price": 250.0, "game": "pokemon"}
    body.update(payload)
    resp = client.post("/listings", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def parse(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_requires_user(client):
    resp = client.post("/listings", json={"title": "x"})
    assert resp.status_code == 401


def test_create_and_fetch(client):
    listing = create(client)
    assert listing["status"] == "active"
    assert parse(listing["expires_at"]) == T0 + timedelta(hours=48)
    fetched = client.get(f"/listings/{listing['id']}").json()
    assert fetched["title"] == "Umbreon VMAX"


def test_premium_account_gets_longer_listings(client):
    resp = client.put("/accounts/seller-1", json={"account_tier": "premium", "subscription_status": "active"},
                      headers=CRON)
    assert resp.status_code == 200
    assert resp.json()["effective_tier"] == "premium"
    listing = create(client)
    assert parse(listing["expires_at"]) == T0 + timedelta(hours=720)


def test_account_update_requires_secret(client):
    resp = client.put("/accounts/seller-1", json={"account_tier": "premium"})
    assert resp.status_code == 401


def test_archive_restore_flow(client, clock):
    listing = create(client)
    # warm the detail cache; the transition must invalidate it
    client.get(f"/listings/{listing['id']}")

    resp = client.post(f"/listings/{listing['id']}/archive", headers=SELLER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "archived"
    assert client.get(f"/listings/{listing['id']}").json()["status"] == "archived"

    archived = client.get("/users/seller-1/listings", params={"view": "archived"}).json()
    assert [l["id"] for l in archived] == [listing["id"]]
    assert client.get("/listings").json() == []

    clock.advance(hours=3)
    resp = client.post(f"/listings/{listing['id']}/restore", headers=SELLER)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "active"
    assert body["archived_at"] is None
    assert parse(body["expires_at"]) == clock.now + timedelta(hours=48)


def test_invalid_transition_returns_conflict(client):
    listing = create(client)
    resp = client.post(f"/listings/{listing['id']}/restore", headers=SELLER)
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_transition"
    assert client.get(f"/listings/{listing['id']}").json()["status"] == "active"


def test_only_owner_can_act(client):
    listing = create(client)
    other = {"X-User-Id": "someone-else"}
    assert client.post(f"/listings/{listing['id']}/archive", headers=other).status_code == 403
    assert client.delete(f"/listings/{listing['id']}", headers=other).status_code == 403


def test_delete_then_already_removed(client):
    listing = create(client)
    assert client.delete(f"/listings/{listing['id']}", headers=SELLER).json() == {"status": "deleted"}
    resp = client.delete(f"/listings/{listing['id']}", headers=SELLER)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Listing already removed"


def test_mark_sold(client):
    listing = create(client)
    resp = client.post(f"/listings/{listing['id']}/sold", json={"buyer_id": "buyer-1"}, headers=CRON)
    assert resp.status_code == 200
    assert resp.json()["status"] == "sold"
    sold = client.get("/users/seller-1/listings", params={"view": "sold"}).json()
    assert [l["buyer_id"] for l in sold] == ["buyer-1"]
    resp = client.post(f"/listings/{listing['id']}/sold", json={"buyer_id": "seller-1"}, headers=CRON)
    assert resp.status_code == 400


def test_public_view_hides_expired_before_sweep(client, clock):
    first = create(client, title="old")
    clock.advance(hours=47)
    second = create(client, title="new", price=5.0)
    clock.advance(hours=2)
    assert [l["id"] for l in client.get("/listings").json()] == [second["id"]]
    assert client.get("/listings", params={"min_price": 100}).json() == []
    # still active in storage until the sweep runs
    assert client.get(f"/listings/{first['id']}").json()["status"] == "active"


def test_cron_sweep(client, clock):
    listing = create(client)
    assert client.post("/cron/sweep").status_code == 401
    assert client.post("/cron/sweep", headers={"Authorization": "Bearer wrong"}).status_code == 401

    clock.advance(hours=49)
    resp = client.post("/cron/sweep", headers={"Authorization": "Bearer test-cron-secret"})
    assert resp.status_code == 200
    assert resp.json()["archived"] == 1
    assert client.get(f"/listings/{listing['id']}").json()["expiration_reason"] == "tier_duration_exceeded"

    clock.advance(days=8)
    resp = client.post("/cron/sweep", headers=CRON)
    assert resp.json()["deleted"] == 1
    assert client.get(f"/listings/{listing['id']}").status_code == 404


def test_restore_archived_after_upgrade(client, clock):
    listing = create(client)
    clock.advance(hours=49)
    client.post("/cron/sweep", headers=CRON)
    client.put("/accounts/seller-1", json={"account_tier": "premium", "subscription_status": "active"},
               headers=CRON)
    assert client.post("/accounts/seller-1/restore-archived", headers={"X-User-Id": "other"}).status_code == 403
    resp = client.post("/accounts/seller-1/restore-archived", headers=SELLER)
    assert resp.json() == {"restored": [listing["id"]]}


def test_bulk_archive_endpoint(client):
    first = create(client)
    second = create(client, title="Espeon V")
    body = {"action": "archive", "listing_ids": [first["id"], second["id"]]}
    assert client.post("/users/seller-1/listings/bulk", json=body,
                       headers={"X-User-Id": "other"}).status_code == 403
    resp = client.post("/users/seller-1/listings/bulk", json=body, headers=SELLER)
    assert resp.status_code == 200
    data = resp.json()
    assert sorted(data["applied"]) == sorted([first["id"], second["id"]])
    assert {l["status"] for l in data["listings"]} == {"archived"}
    assert client.get(f"/listings/{first['id']}").json()["status"] == "archived"

    resp = client.post("/users/seller-1/listings/bulk", json={"action": "sell", "listing_ids": [first["id"]]},
                       headers=SELLER)
    assert resp.status_code == 422


def test_manual_premium_plan_counts_as_premium(client):
    resp = client.put("/accounts/seller-1", json={
        "account_tier": "premium",
        "subscription_status": "past_due",
        "subscription_manually_updated": True,
        "subscription_current_plan": "premium",
    }, headers=CRON)
    assert resp.status_code == 200
    assert resp.json()["effective_tier"] == "premium"
    assert resp.json()["subscription_manually_updated"] is True
