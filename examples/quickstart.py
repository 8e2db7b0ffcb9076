#!/usr/bin/env python3
"""
LonePengu Quickstart — the full session lifecycle in one script.

Logs in → validates → refreshes → logs out → shows the session is dead.
Run with: python examples/quickstart.py

Requires: pip install httpx
Backend must be running: http://localhost:3000
"""

import sys
import uuid

import httpx

BASE = "http://localhost:3000"


def main():
    run_id = uuid.uuid4().hex[:6]
    client = httpx.Client(base_url=BASE, timeout=10)

    # ── Health check ──────────────────────────────────────────────
    print("Checking backend health...")
    try:
        resp = client.get("/health")
    except httpx.ConnectError:
        print(f"Backend not reachable at {BASE}")
        print("Start it with:  lonepengu serve")
        sys.exit(1)
    health = resp.json()
    print(f"  Status:   {health['status']}")
    print(f"  Database: {health['database']}")
    if health["status"] != "healthy":
        sys.exit(1)

    # ── Login (first sight creates the user) ──────────────────────
    email = f"demo-{run_id}@example.com"
    print(f"\n1. Logging in as {email}...")
    resp = client.post("/api/auth/login", json={
        "email": email,
        "name": f"Demo {run_id}",
        "auth_provider": "email",
        "device_info": {"platform": "quickstart"},
    })
    assert resp.status_code == 200, f"Failed: {resp.text}"
    login = resp.json()
    print(f"   User: {login['user_id'][:8]}... (new: {login['is_new_user']})")
    print(f"   Access token expires: {login['expires_at']}")

    # ── Login again (same user, second session) ───────────────────
    print("\n2. Logging in again...")
    resp = client.post("/api/auth/login", json={"email": email, "auth_provider": "email"})
    again = resp.json()
    assert again["user_id"] == login["user_id"]
    print(f"   Same user, new user flag: {again['is_new_user']}")

    # ── Validate ──────────────────────────────────────────────────
    print("\n3. Validating the first session...")
    auth = {"Authorization": f"Bearer {login['access_token']}"}
    resp = client.get("/api/auth/validate", headers=auth)
    print(f"   Valid: {resp.json()['valid']}")

    # ── Refresh ───────────────────────────────────────────────────
    print("\n4. Refreshing...")
    resp = client.post("/api/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    refreshed = resp.json()
    old = client.get("/api/auth/validate", headers=auth).json()["valid"]
    auth = {"Authorization": f"Bearer {refreshed['access_token']}"}
    new = client.get("/api/auth/validate", headers=auth).json()["valid"]
    print(f"   Old access token valid: {old}")
    print(f"   New access token valid: {new}")

    # ── Logout ────────────────────────────────────────────────────
    print("\n5. Logging out...")
    resp = client.post("/api/auth/logout", headers=auth)
    print(f"   {resp.json()['message']}")
    resp = client.get("/api/auth/validate", headers=auth)
    print(f"   Valid after logout: {resp.json()['valid']}")

    # ── Refresh after logout is refused ───────────────────────────
    resp = client.post("/api/auth/refresh", json={"refresh_token": login["refresh_token"]})
    print(f"   Refresh after logout: {resp.status_code} {resp.json()['code']}")

    # The second session from step 2 is untouched
    resp = client.get(
        "/api/auth/validate",
        headers={"Authorization": f"Bearer {again['access_token']}"},
    )
    print(f"   Other session still valid: {resp.json()['valid']}")

    print("\nDone.")


if __name__ == "__main__":
    main()
