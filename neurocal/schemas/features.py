"""
Pydantic schemas for feature access checks.
"""

from typing import Optional

from pydantic import BaseModel, Field


class FeatureCheckResponse(BaseModel):
    """
    Response for GET /api/features/check/{feature}.

    Checking access never counts as usage.
    """
    feature: str = Field(..., examples=["ai_suggestions"])
    has_access: bool
    usage_count: int = Field(..., description="Uses this calendar month")
    limit: Optional[int] = Field(None, description="Monthly limit from the plan (-1 = unlimited)")
    is_unlimited: bool
    plan_name: Optional[str] = None
    status: Optional[str] = Field(None, description="Subscription status")
