#!/usr/bin/env python3
"""Benchmark permission checks: latency (p50, p95, p99) and QPS.

Usage:
  Against a development server (no Keycloak, ROLEGATE_BOOTSTRAP_ADMIN_USER=bench-admin):
    export API_URL=http://localhost:8000 BENCH_ADMIN=bench-admin
    python scripts/bench_check.py [--num-users 200] [--num-checks 2000]

  With Keycloak, set KEYCLOAK_URL, KEYCLOAK_REALM, KEYCLOAK_CLIENT_ID,
  KEYCLOAK_CLIENT_SECRET, BENCH_USER and BENCH_PASSWORD; checks are then
  made for the token's own subject.
"""
from __future__ import annotations

import argparse
import os
import random
import statistics
import sys
import time

import httpx


def get_token(
    keycloak_url: str,
    realm: str,
    client_id: str,
    client_secret: str,
    username: str,
    password: str,
) -> str:
    url = f"{keycloak_url.rstrip('/')}/realms/{realm}/protocol/openid-connect/token"
    r = httpx.post(
        url,
        data={
            "grant_type": "password",
            "client_id": client_id,
            "client_secret": client_secret,
            "username": username,
            "password": password,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        timeout=30.0,
    )
    r.raise_for_status()
    return r.json()["access_token"]


def admin_headers() -> dict[str, str]:
    keycloak_url = os.environ.get("KEYCLOAK_URL")
    if not keycloak_url:
        return {"X-User-Id": os.environ.get("BENCH_ADMIN", "bench-admin")}
    token = get_token(
        keycloak_url,
        os.environ.get("KEYCLOAK_REALM", "rolegate"),
        os.environ.get("KEYCLOAK_CLIENT_ID", "rolegate-api"),
        os.environ.get("KEYCLOAK_CLIENT_SECRET", ""),
        os.environ.get("BENCH_USER", "testuser"),
        os.environ.get("BENCH_PASSWORD", "testpass"),
    )
    return {"Authorization": f"Bearer {token}"}


def seed(client: httpx.Client, api_url: str, headers: dict[str, str], num_users: int) -> list[str]:
    """Create a small role hierarchy and assign it across departments."""
    roles = [
        {"id": "bench_employee", "name": "Bench Employee",
         "permissions": [{"resource_type": "documents", "actions": ["read"]}]},
        {"id": "bench_lead", "name": "Bench Lead", "parent_id": "bench_employee",
         "permissions": [{"resource_type": "tickets", "actions": ["read", "close"]}]},
        {"id": "bench_manager", "name": "Bench Manager", "parent_id": "bench_lead",
         "permissions": [
             {"resource_type": "documents", "actions": ["write"]},
             {"resource_type": "tickets", "actions": ["delete"], "effect": "deny"},
         ]},
    ]
    for role in roles:
        r = client.post(f"{api_url}/v1/roles", json=role, headers=headers)
        if r.status_code not in (201, 409):
            r.raise_for_status()
        client.post(f"{api_url}/v1/roles/{role['id']}/publish", headers=headers)

    users = [f"bench-user-{i}" for i in range(num_users)]
    for i, user in enumerate(users):
        client.post(
            f"{api_url}/v1/assignments",
            json={
                "user_id": user,
                "role_id": roles[i % len(roles)]["id"],
                "scope": {"type": "department", "values": [f"{i % 10:02d}"]},
            },
            headers=headers,
        )
    return users


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark permission checks")
    parser.add_argument("--num-users", type=int, default=200, help="Users to assign before checking")
    parser.add_argument("--num-checks", type=int, default=1000, help="Number of check requests")
    parser.add_argument("--output", type=str, default="/results/bench_check.txt", help="Output file path")
    args = parser.parse_args()

    api_url = os.environ.get("API_URL", "http://localhost:8000").rstrip("/")
    headers = admin_headers()

    with httpx.Client(timeout=60.0) as client:
        print(f"Seeding roles and {args.num_users} users...")
        users = seed(client, api_url, headers, args.num_users)

    requests = [
        ("documents", "read"),
        ("documents", "write"),
        ("tickets", "close"),
        ("tickets", "delete"),
        ("reports", "read"),
    ]
    latencies: list[float] = []
    outcomes = {"allow": 0, "deny": 0}
    errors = 0
    rng = random.Random(7)
    print(f"Running {args.num_checks} permission checks...")
    start_total = time.perf_counter()
    with httpx.Client(timeout=30.0) as client:
        for _ in range(args.num_checks):
            resource_type, action = rng.choice(requests)
            t0 = time.perf_counter()
            r = client.post(
                f"{api_url}/v1/check",
                json={
                    "user_id": rng.choice(users),
                    "resource_type": resource_type,
                    "action": action,
                    "scope_context": {"department": f"{rng.randrange(10):02d}"},
                },
                headers=headers,
            )
            elapsed = time.perf_counter() - t0
            if r.status_code == 200:
                latencies.append(elapsed)
                outcomes[r.json()["outcome"]] += 1
            else:
                errors += 1
        ready = client.get(f"{api_url}/v1/health/ready").json()
    total_elapsed = time.perf_counter() - start_total

    n = len(latencies)
    if n == 0:
        print("No successful checks.")
        return 1

    qps = n / total_elapsed
    p50 = statistics.median(latencies) * 1000
    p95 = sorted(latencies)[int(n * 0.95) - 1] * 1000 if n >= 20 else p50
    p99 = sorted(latencies)[int(n * 0.99) - 1] * 1000 if n >= 100 else p95
    cache = ready.get("cache") or {}

    summary = (
        f"Check benchmark (users={args.num_users}, checks={n}, errors={errors})\n"
        f"  Outcomes: allow={outcomes['allow']}, deny={outcomes['deny']}\n"
        f"  QPS: {qps:.2f}\n"
        f"  Latency: p50={p50:.1f} ms, p95={p95:.1f} ms, p99={p99:.1f} ms\n"
        f"  Cache: hits={cache.get('hits', 0)}, misses={cache.get('misses', 0)}\n"
        f"  Total time: {total_elapsed:.2f} s\n"
    )
    print(summary)

    try:
        os.makedirs(os.path.dirname(args.output) or ".", exist_ok=True)
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(summary)
        print(f"Wrote {args.output}")
    except OSError:
        pass

    return 0


if __name__ == "__main__":
    sys.exit(main())
