"""Product reviews."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from .errors import DuplicateReview, ProductNotFound, StoreFailure, ValidationFailed
from .models import Product, Review, User
from .stores import CatalogStore

logger = logging.getLogger(__name__)


def recompute_rating(product: Product) -> None:
    ratings = [review.rating for review in product.reviews]
    product.rating_count = len(ratings)
    product.rating_average = round(sum(ratings) / len(ratings), 2) if ratings else 0.0


def add_review(
    catalog: CatalogStore,
    product_id: UUID,
    user: User,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    """Attach a review to a product and refresh its rating summary.

    A user may review a product once. The average is recomputed from every
    stored review on each insert.
    """

    product = catalog.find_by_id(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    if not 1 <= rating <= 5:
        raise ValidationFailed(details=["Rating must be between 1 and 5"])

    for existing in product.reviews:
        if existing.user_id == user.id:
            raise DuplicateReview()

    review = Review(product_id=product.id, user_id=user.id, rating=rating, comment=comment or "")
    try:
        catalog.add_review(product, review)
        recompute_rating(product)
        catalog.save(product)
        catalog.commit()
    except SQLAlchemyError as exc:
        catalog.rollback()
        raise StoreFailure("add review", exc) from exc

    logger.info("User %s reviewed product %s (%d/5)", user.id, product.id, rating)
    return review
