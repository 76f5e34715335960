"""
Tests for cancellation policy endpoints and storage.
"""

import pytest
from httpx import AsyncClient

from studio_booking.models import Setting
from studio_booking.services.policy_service import SettingsPolicyStore


@pytest.mark.asyncio
async def test_default_policy_when_none_stored(client: AsyncClient):
    response = await client.get("/api/v1/settings/cancellation-policy")

    assert response.status_code == 200
    data = response.json()
    assert data["is_default"] is True
    assert data["rules"] == [
        {"days_before": 7, "fee_percent": 0},
        {"days_before": 3, "fee_percent": 50},
        {"days_before": 2, "fee_percent": 70},
        {"days_before": 1, "fee_percent": 100},
    ]


@pytest.mark.asyncio
async def test_admin_replaces_policy(client: AsyncClient, admin_headers):
    response = await client.put(
        "/api/v1/admin/settings/cancellation-policy",
        json={"rules": [{"days_before": 2, "fee_percent": 60}, {"days_before": 10, "fee_percent": 20}]},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert [r["days_before"] for r in response.json()["rules"]] == [10, 2]

    public = await client.get("/api/v1/settings/cancellation-policy")
    assert public.json()["is_default"] is False
    assert public.json()["rules"][0] == {"days_before": 10, "fee_percent": 20}


@pytest.mark.asyncio
async def test_new_policy_drives_quotes(client: AsyncClient, admin_headers, auth_headers, make_booking):
    await client.put(
        "/api/v1/admin/settings/cancellation-policy",
        json={"rules": [{"days_before": 30, "fee_percent": 0}, {"days_before": 0, "fee_percent": 25}]},
        headers=admin_headers,
    )
    booking = await make_booking(status="confirmed", days_ahead=10, total_price=40000)

    response = await client.get(f"/api/v1/bookings/{booking.id}/cancellation-quote", headers=auth_headers)

    assert response.json()["fee_percent"] == 25
    assert response.json()["fee"] == 10000


@pytest.mark.asyncio
async def test_customer_cannot_change_policy(client: AsyncClient, auth_headers):
    response = await client.put(
        "/api/v1/admin/settings/cancellation-policy",
        json={"rules": [{"days_before": 1, "fee_percent": 0}]},
        headers=auth_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("rules", [
    [],
    [{"days_before": 3, "fee_percent": 101}],
    [{"days_before": -1, "fee_percent": 10}],
    [{"days_before": 3, "fee_percent": 10}, {"days_before": 3, "fee_percent": 20}],
])
async def test_invalid_policy_rejected(client: AsyncClient, admin_headers, rules):
    response = await client.put(
        "/api/v1/admin/settings/cancellation-policy", json={"rules": rules}, headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unreadable_stored_policy_falls_back_to_default(db_session):
    db_session.add(Setting(key="cancellation_policy", value={"rules": [{"days_before": "soon"}]}))
    await db_session.commit()

    policy = await SettingsPolicyStore().load(db_session)

    assert policy.is_default is True
    assert len(policy.rules) == 4


@pytest.mark.asyncio
async def test_bare_rule_list_is_accepted(db_session):
    db_session.add(Setting(key="cancellation_policy", value=[{"days_before": 5, "fee_percent": 40}]))
    await db_session.commit()

    policy = await SettingsPolicyStore().load(db_session)

    assert policy.is_default is False
    assert policy.rules[0].fee_percent == 40
