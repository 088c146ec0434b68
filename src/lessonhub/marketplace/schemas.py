"""Marketplace payloads."""

from __future__ import annotations

from datetime import datetime

from lessonhub.schemas import CamelModel


class PurchaseRequest(CamelModel):
    assignment_id: int


class MarketplaceItem(CamelModel):
    assignment_id: int
    lesson_id: int
    title: str
    type: str
    price: float
    status: str
    deadline: datetime


class MarketplaceResponse(CamelModel):
    savings: float
    items: list[MarketplaceItem]
