"""Review service: purchase-gated reviews that keep the product rating summary fresh"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from dataclasses import dataclass
from marketplace.core.exceptions import (
    AuthorizationError,
    CollaboratorError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from marketplace.models.product import Product
from marketplace.models.review import Review
from marketplace.schemas.product import ProductRatingSummary
from marketplace.schemas.review import ReviewResponse
from marketplace.services.order_service import order_service
from marketplace.services.rating_service import rating_service
from typing import List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000

SORT_OPTIONS = {
    "created_at:asc": Review.created_at.asc(),
    "created_at:desc": Review.created_at.desc(),
    "rating:asc": Review.rating.asc(),
    "rating:desc": Review.rating.desc(),
}


@dataclass
class ReviewMutationResult:
    """
    Outcome of a committed review change. The review change stands even
    when the summary recompute failed; `rating_error` then says why.
    `review` is a copy taken before the recompute, whose rollback on failure
    expires every instance in the session.
    """
    review: ReviewResponse
    summary: Optional[ProductRatingSummary] = None
    rating_error: Optional[CollaboratorError] = None

    @property
    def rating_updated(self) -> bool:
        return self.rating_error is None


def _validate_rating(rating) -> None:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")


def _validate_comment(comment: Optional[str]) -> None:
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")


class ReviewService:

    @staticmethod
    async def _recalculate(db: AsyncSession, product_id: int, review: Review) -> ReviewMutationResult:
        committed = ReviewResponse.model_validate(review)
        try:
            summary = await rating_service.recalculate(db, product_id)
        except CollaboratorError as e:
            logger.warning(f"[REVIEWS] Review {committed.id} committed but rating summary is stale for product {product_id}: {e.message}")
            return ReviewMutationResult(review=committed, rating_error=e)
        return ReviewMutationResult(review=committed, summary=summary)

    @staticmethod
    async def _get_owned_review(db: AsyncSession, product_id: int, review_id: int, user_id: str) -> Review:
        result = await db.execute(
            select(Review).where(Review.id == review_id, Review.product_id == product_id)
        )
        review = result.scalar_one_or_none()
        if not review:
            raise NotFoundError("Review not found")
        if review.user_id != user_id:
            raise AuthorizationError("You can only modify your own review")
        return review

    @staticmethod
    async def create_review(
        db: AsyncSession,
        product_id: int,
        user_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> ReviewMutationResult:
        """
        Create a review. The user must not have reviewed the product yet and
        must have a delivered order containing it.
        """
        _validate_rating(rating)
        _validate_comment(comment)

        product = await db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")

        existing_review = await db.execute(
            select(Review.id).where(
                Review.user_id == user_id,
                Review.product_id == product_id
            )
        )
        if existing_review.scalar_one_or_none() is not None:
            raise ConflictError("You have already reviewed this product")

        if not await order_service.has_purchased(db, user_id, product_id):
            raise AuthorizationError("You can only review products you have purchased and received")

        review = Review(
            user_id=user_id,
            product_id=product_id,
            rating=rating,
            comment=comment or "",
        )
        db.add(review)
        try:
            await db.commit()
        except IntegrityError as e:
            # Lost a race against a concurrent submission by the same user
            await db.rollback()
            raise ConflictError("You have already reviewed this product") from e
        await db.refresh(review)
        logger.info(f"[REVIEWS] User {user_id} reviewed product {product_id} with rating {rating}")

        return await ReviewService._recalculate(db, product_id, review)

    @staticmethod
    async def update_review(
        db: AsyncSession,
        product_id: int,
        review_id: int,
        user_id: str,
        rating: Optional[int] = None,
        comment: Optional[str] = None
    ) -> ReviewMutationResult:
        """Change rating and/or comment of the caller's own review"""
        if rating is not None:
            _validate_rating(rating)
        _validate_comment(comment)

        review = await ReviewService._get_owned_review(db, product_id, review_id, user_id)
        if rating is not None:
            review.rating = rating
        if comment is not None:
            review.comment = comment
        await db.commit()
        await db.refresh(review)
        logger.info(f"[REVIEWS] User {user_id} updated review {review_id}")

        return await ReviewService._recalculate(db, product_id, review)

    @staticmethod
    async def delete_review(
        db: AsyncSession,
        product_id: int,
        review_id: int,
        user_id: str
    ) -> ReviewMutationResult:
        review = await ReviewService._get_owned_review(db, product_id, review_id, user_id)
        await db.delete(review)
        await db.commit()
        logger.info(f"[REVIEWS] User {user_id} deleted review {review_id}")

        return await ReviewService._recalculate(db, product_id, review)

    @staticmethod
    async def list_reviews(
        db: AsyncSession,
        product_id: int,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at:desc"
    ) -> Tuple[List[Review], int]:
        """Returns: (reviews on the page, total reviews of the product)"""
        if page < 1 or limit < 1:
            raise ValidationError("Invalid query parameters")
        order_by = SORT_OPTIONS.get(sort)
        if order_by is None:
            raise ValidationError(f"Unsupported sort: {sort}")

        total = await db.scalar(
            select(func.count(Review.id)).where(Review.product_id == product_id)
        )
        result = await db.execute(
            select(Review)
            .where(Review.product_id == product_id)
            .order_by(order_by, Review.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def get_review_stats(db: AsyncSession, product_id: int) -> dict:
        """Get product review statistics"""
        result = await db.execute(
            select(
                func.count(Review.id).label('total_reviews'),
                func.avg(Review.rating).label('average_rating'),
                func.sum(case((Review.rating == 5, 1), else_=0)).label('five_star'),
                func.sum(case((Review.rating == 4, 1), else_=0)).label('four_star'),
                func.sum(case((Review.rating == 3, 1), else_=0)).label('three_star'),
                func.sum(case((Review.rating == 2, 1), else_=0)).label('two_star'),
                func.sum(case((Review.rating == 1, 1), else_=0)).label('one_star'),
            ).where(Review.product_id == product_id)
        )
        stats = result.one()

        return {
            "product_id": product_id,
            "total_reviews": stats.total_reviews,
            "average_rating": float(stats.average_rating) if stats.average_rating else 0.0,
            "rating_distribution": {
                5: stats.five_star or 0,
                4: stats.four_star or 0,
                3: stats.three_star or 0,
                2: stats.two_star or 0,
                1: stats.one_star or 0,
            },
        }


review_service = ReviewService()
