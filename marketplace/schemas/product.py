"""Product schemas"""
from pydantic import BaseModel, Field


class ProductRatingSummary(BaseModel):
    """Average/count pair cached on the product record"""
    product_id: int
    average_rating: float = Field(default=0.0, ge=0, le=5)
    review_count: int = Field(default=0, ge=0)

    model_config = {"from_attributes": True}
