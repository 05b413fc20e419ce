"""Review schemas"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict
from marketplace.schemas.product import ProductRatingSummary


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    id: int
    user_id: str
    product_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReviewList(BaseModel):
    page: int
    limit: int
    total: int
    reviews: List[ReviewResponse]


class ReviewMutationResponse(BaseModel):
    message: str
    review: ReviewResponse
    # None when the summary recompute failed; retry via the rating endpoint
    summary: Optional[ProductRatingSummary] = None
    rating_updated: bool = True


class ReviewStats(BaseModel):
    product_id: int
    total_reviews: int
    average_rating: float
    rating_distribution: Dict[int, int]
