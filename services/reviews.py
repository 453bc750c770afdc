import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.order import Order
from models.order_item import OrderItem, ItemStatus
from models.product import Product
from models.review import Review
from models.user import User
from services.email import send_templated_email
from services.exceptions import ConflictError, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

MODERATION_ACTIONS = ("approve", "reject", "pending")


def has_delivered_purchase(db: Session, user_id: int, product_id: int) -> bool:
    return (
        db.query(OrderItem.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.user_id == user_id,
            OrderItem.product_id == product_id,
            OrderItem.status == ItemStatus.DELIVERED,
        )
        .first()
        is not None
    )


def create_review(
    db: Session, user: User, product_id: int, rating: int, title: Optional[str], content: Optional[str]
) -> Review:
    product = db.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not found")
    existing = (
        db.query(Review).filter(Review.user_id == user.id, Review.product_id == product_id).one_or_none()
    )
    if existing:
        raise ConflictError("You have already reviewed this product")

    review = Review(
        user_id=user.id,
        product_id=product_id,
        rating=rating,
        title=title or None,
        content=content or None,
        is_verified=has_delivered_purchase(db, user.id, product_id),
        is_approved=False,
    )
    db.add(review)
    db.flush()
    return review


def rating_stats(db: Session, product_id: int) -> dict:
    rows = (
        db.query(Review.rating, func.count(Review.id))
        .filter(Review.product_id == product_id, Review.is_approved.is_(True))
        .group_by(Review.rating)
        .all()
    )
    distribution = {star: 0 for star in range(5, 0, -1)}
    total = 0
    weighted = 0
    for rating, count in rows:
        distribution[rating] = count
        total += count
        weighted += rating * count
    average = round(weighted / total, 1) if total else 0.0
    return {"average": average, "total": total, "distribution": distribution}


def refresh_product_rating(db: Session, product: Product) -> None:
    db.flush()
    stats = rating_stats(db, product.id)
    product.avg_rating = stats["average"]
    product.review_count = stats["total"]


def moderate_review(db: Session, review: Review, action: str, rejection_reason: Optional[str] = None) -> Review:
    if action not in MODERATION_ACTIONS:
        raise ValidationFailed(f"Unknown action: {action}")
    if action == "approve":
        review.is_approved = True
        review.rejection_reason = None
    elif action == "reject":
        review.is_approved = False
        review.rejection_reason = rejection_reason or "Does not meet review guidelines"
    else:
        review.is_approved = False
        review.rejection_reason = None
    review.moderated_at = datetime.utcnow()
    refresh_product_rating(db, review.product)
    logger.info("Review %s %s", review.id, action)

    if action != "pending" and review.user is not None:
        send_templated_email(
            review.user.email,
            "Your review has been moderated",
            "emails/review_moderated.txt",
            {
                "first_name": review.user.first_name,
                "product_name": review.product.name,
                "approved": review.is_approved,
                "reason": review.rejection_reason,
            },
        )
    return review


def delete_review(db: Session, review: Review) -> None:
    product = review.product
    db.delete(review)
    refresh_product_rating(db, product)
