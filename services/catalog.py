from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
import structlog

from models.product import Product
from models.promo_code import PromoCode
from schemas.checkout import CartItemIn
from services.pricing import ZERO, sanitize_amount

logger = structlog.get_logger(__name__)


@dataclass
class ValidatedLine:
    product_id: str
    product_name: str
    product_image: Optional[str]
    price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass
class CartValidation:
    lines: List[ValidatedLine] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def subtotal(self) -> Decimal:
        return sanitize_amount(sum((line.line_total for line in self.lines), ZERO))


def _diff(product_id: str, field_name: str, expected, received, message: str) -> Dict[str, Any]:
    return {
        "productId": product_id,
        "field": field_name,
        "expected": None if expected is None else str(expected),
        "received": None if received is None else str(received),
        "message": message,
    }


class Catalog:
    """Canonical price and availability lookups against the product table."""

    def __init__(self, db: Session):
        self.db = db

    def get_products(self, product_ids: List[str]) -> Dict[str, Product]:
        if not product_ids:
            return {}
        rows = self.db.query(Product).filter(Product.id.in_(set(product_ids))).all()
        return {p.id: p for p in rows}

    def get_promo_code(self, code: Optional[str]) -> Optional[PromoCode]:
        if not code or not code.strip():
            return None
        return self.db.query(PromoCode).filter(PromoCode.code == code.strip().upper()).one_or_none()

    def validate_cart(self, items: List[CartItemIn]) -> CartValidation:
        """Re-price every line from the catalog and itemize any drift.

        Prices must match exactly; snapshot names and images always come
        from the catalog, never from the client.
        """
        result = CartValidation()
        products = self.get_products([item.product_id for item in items])
        # Stock is checked against everything the cart asks for, across repeated lines
        requested = Counter()
        for item in items:
            if item.quantity > 0:
                requested[item.product_id] += item.quantity
        stock_reported = set()

        for item in items:
            product = products.get(item.product_id)
            if product is None:
                result.errors.append(_diff(item.product_id, "productId", None, item.product_id, "Product not found"))
                continue
            if not product.is_active:
                result.errors.append(_diff(item.product_id, "availability", "active", "inactive", f"{product.name} is no longer available"))
                continue
            if item.quantity < 1:
                result.errors.append(_diff(item.product_id, "quantity", ">= 1", item.quantity, "Quantity must be at least 1"))
                continue
            if product.stock < requested[item.product_id] and item.product_id not in stock_reported:
                stock_reported.add(item.product_id)
                result.errors.append(
                    _diff(
                        item.product_id,
                        "quantity",
                        product.stock,
                        requested[item.product_id],
                        f"Only {product.stock} of {product.name} left in stock",
                    )
                )
            if product.sizes and item.size and item.size not in product.sizes:
                result.errors.append(_diff(item.product_id, "size", ",".join(product.sizes), item.size, "Size not available"))
            if product.colors and item.color and item.color not in product.colors:
                result.errors.append(_diff(item.product_id, "color", ",".join(product.colors), item.color, "Color not available"))

            canonical = sanitize_amount(product.price)
            if item.price != canonical:
                result.errors.append(_diff(item.product_id, "price", canonical, item.price, f"Price for {product.name} has changed"))

            result.lines.append(
                ValidatedLine(
                    product_id=product.id,
                    product_name=product.name,
                    product_image=product.image,
                    price=canonical,
                    quantity=item.quantity,
                    size=item.size,
                    color=item.color,
                )
            )

        if result.errors:
            logger.warning("cart_validation_failed", errors=len(result.errors))
        return result
