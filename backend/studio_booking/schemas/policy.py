"""
Pydantic schemas for the cancellation policy.
"""

from pydantic import BaseModel, Field, field_validator


class CancellationRule(BaseModel):
    """One fee tier: cancelling at least `days_before` days ahead costs `fee_percent`."""

    days_before: int = Field(..., ge=0, le=365)
    fee_percent: int = Field(..., ge=0, le=100)


class CancellationPolicy(BaseModel):
    rules: list[CancellationRule] = Field(..., min_length=1, max_length=20)

    @field_validator("rules")
    @classmethod
    def unique_thresholds(cls, rules: list[CancellationRule]) -> list[CancellationRule]:
        thresholds = [rule.days_before for rule in rules]
        if len(thresholds) != len(set(thresholds)):
            raise ValueError("Each days_before threshold may appear only once")
        return rules


class CancellationPolicyResponse(CancellationPolicy):
    is_default: bool = False
