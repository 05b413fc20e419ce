"""
Product rating aggregation.

The summary stored on a product (average_rating, review_count) is always
rebuilt from the complete set of reviews. Nothing else writes those two
columns, and nothing adjusts them incrementally.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from marketplace.core.exceptions import CollaboratorError, NotFoundError
from marketplace.models.product import Product
from marketplace.models.review import Review
from marketplace.schemas.product import ProductRatingSummary
from typing import Sequence
import logging

logger = logging.getLogger(__name__)


def compute_summary(product_id: int, ratings: Sequence[int]) -> ProductRatingSummary:
    """Mean and count of ratings; 0.0 average when there are none. Full float precision."""
    count = len(ratings)
    average = 0.0 if count == 0 else sum(ratings) / count
    return ProductRatingSummary(product_id=product_id, average_rating=average, review_count=count)


class RatingService:

    @staticmethod
    async def get_summary(db: AsyncSession, product_id: int) -> ProductRatingSummary:
        product = await db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return ProductRatingSummary(
            product_id=product.id,
            average_rating=product.average_rating,
            review_count=product.review_count,
        )

    @staticmethod
    async def recalculate(db: AsyncSession, product_id: int) -> ProductRatingSummary:
        """
        Recompute and persist the rating summary of a product.

        Idempotent and safe to retry. Store failures are rolled back and
        raised as CollaboratorError.
        """
        try:
            product = await db.get(Product, product_id)
            if not product:
                raise NotFoundError("Product not found")

            result = await db.execute(
                select(Review.rating).where(Review.product_id == product_id)
            )
            summary = compute_summary(product_id, list(result.scalars().all()))

            product.average_rating = summary.average_rating
            product.review_count = summary.review_count
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[RATING] Recalculation failed for product {product_id}: {e}", exc_info=True)
            raise CollaboratorError("Rating store unavailable, retry the recalculation") from e

        logger.info(
            f"[RATING] Product {product_id}: average={summary.average_rating}, count={summary.review_count}"
        )
        return summary


rating_service = RatingService()
