"""
Cancellation policy endpoints.
Reads are public (the booking page shows the policy); writes are admin-only.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studio_booking.db.session import get_db
from studio_booking.schemas.policy import CancellationPolicy, CancellationPolicyResponse
from studio_booking.services.policy_service import SettingsPolicyStore, get_policy_store
from studio_booking.core.security import require_admin

router = APIRouter(tags=["Settings"])


@router.get("/settings/cancellation-policy", response_model=CancellationPolicyResponse)
async def get_cancellation_policy(
    db: AsyncSession = Depends(get_db),
    store: SettingsPolicyStore = Depends(get_policy_store),
):
    policy = await store.load(db)
    return CancellationPolicyResponse(rules=policy.rules, is_default=policy.is_default)


@router.put(
    "/admin/settings/cancellation-policy",
    response_model=CancellationPolicyResponse,
    dependencies=[Depends(require_admin)],
)
async def update_cancellation_policy(
    payload: CancellationPolicy,
    db: AsyncSession = Depends(get_db),
    store: SettingsPolicyStore = Depends(get_policy_store),
):
    """Replace the policy. Tiers are stored longest notice first."""
    rules = await store.save_policy(db, payload)
    return CancellationPolicyResponse(rules=rules, is_default=False)
