"""Admin back-office payloads."""

from __future__ import annotations

from decimal import Decimal

from pydantic import Field, model_validator

from lessonhub.schemas import CamelModel


class ImpersonationResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: int
    real_user_id: int


class PointsAdjustment(CamelModel):
    points: int = 0
    amount_euro: Decimal = Decimal("0")
    note: str = Field(min_length=1, max_length=256)

    @model_validator(mode="after")
    def _non_zero(self) -> PointsAdjustment:
        if self.points == 0 and self.amount_euro == 0:
            raise ValueError("An adjustment needs points or euros")
        return self


class AdjustmentResponse(CamelModel):
    transaction_id: int
    user_id: int
    points: int
    amount_euro: float
    total_points: int


class DriftEntry(CamelModel):
    user_id: int
    total_points: int
    ledger_points: int
    difference: int


class LedgerAuditResponse(CamelModel):
    consistent: bool
    drift: list[DriftEntry]
