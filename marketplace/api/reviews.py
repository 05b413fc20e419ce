"""Product review and rating summary endpoints"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from marketplace.database import get_db
from marketplace.api.deps import CurrentUser, get_current_consumer, get_current_admin
from marketplace.services.rating_service import rating_service
from marketplace.services.review_service import review_service, ReviewMutationResult
from marketplace.schemas.product import ProductRatingSummary
from marketplace.schemas.review import (
    ReviewCreate,
    ReviewUpdate,
    ReviewResponse,
    ReviewList,
    ReviewMutationResponse,
    ReviewStats,
)
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _mutation_response(message: str, result: ReviewMutationResult) -> ReviewMutationResponse:
    return ReviewMutationResponse(
        message=message,
        review=result.review,
        summary=result.summary,
        rating_updated=result.rating_updated,
    )


@router.post(
    "/{product_id}/reviews",
    response_model=ReviewMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    product_id: int,
    review: ReviewCreate,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Create product review (consumers with a delivered order only)"""
    result = await review_service.create_review(
        db, product_id, current_user.user_id, review.rating, review.comment
    )
    return _mutation_response("Review submitted.", result)


@router.get("/{product_id}/reviews", response_model=ReviewList)
async def list_reviews(
    product_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort: str = "created_at:desc",
    db: AsyncSession = Depends(get_db)
):
    """Get product reviews"""
    reviews, total = await review_service.list_reviews(db, product_id, page, limit, sort)
    return ReviewList(
        page=page,
        limit=limit,
        total=total,
        reviews=[ReviewResponse.model_validate(r) for r in reviews],
    )


@router.get("/{product_id}/reviews/stats", response_model=ReviewStats)
async def get_product_review_stats(
    product_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get product review statistics"""
    return await review_service.get_review_stats(db, product_id)


@router.put("/{product_id}/reviews/{review_id}", response_model=ReviewMutationResponse)
async def update_review(
    product_id: int,
    review_id: int,
    review: ReviewUpdate,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    result = await review_service.update_review(
        db, product_id, review_id, current_user.user_id, review.rating, review.comment
    )
    return _mutation_response("Review updated.", result)


@router.delete("/{product_id}/reviews/{review_id}", response_model=ReviewMutationResponse)
async def delete_review(
    product_id: int,
    review_id: int,
    current_user: CurrentUser = Depends(get_current_consumer),
    db: AsyncSession = Depends(get_db)
):
    """Delete own review; the body reports whether the rating summary caught up"""
    result = await review_service.delete_review(db, product_id, review_id, current_user.user_id)
    return _mutation_response("Review deleted.", result)


@router.get("/{product_id}/rating", response_model=ProductRatingSummary)
async def get_rating_summary(
    product_id: int,
    db: AsyncSession = Depends(get_db)
):
    return await rating_service.get_summary(db, product_id)


@router.post("/{product_id}/rating/recalculate", response_model=ProductRatingSummary)
async def recalculate_rating(
    product_id: int,
    current_user: CurrentUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Rebuild the rating summary from all reviews (admin retry after a failed recompute)"""
    logger.info(f"[RATING] Admin {current_user.user_id} requested recalculation for product {product_id}")
    return await rating_service.recalculate(db, product_id)
