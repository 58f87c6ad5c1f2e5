"""
Erreurs métier du moteur de ventes.

Chaque erreur porte un code stable (exposé tel quel par l'API) et un statut
HTTP. Ce sont des issues attendues : elles remontent toujours à l'appelant,
elles ne sont jamais avalées ni rejouées.
"""

from __future__ import annotations

from typing import Any


class SaleError(Exception):
    code = "SALE_ERROR"
    http_status = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message, **self.extra}


class ProductNotFound(SaleError):
    code = "PRODUCT_NOT_FOUND"
    http_status = 404

    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id


class ProductInactive(SaleError):
    code = "PRODUCT_INACTIVE"
    http_status = 422

    def __init__(self, product_id: int, name: str | None = None) -> None:
        label = f"'{name}'" if name else str(product_id)
        super().__init__(f"Product {label} is not available", product_id=product_id)
        self.product_id = product_id


class InsufficientStock(SaleError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, product_id: int, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_id} (available={available}, requested={requested})",
            product_id=product_id,
            available=available,
            requested=requested,
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvalidQuantity(SaleError):
    code = "INVALID_QUANTITY"
    http_status = 422

    def __init__(self, quantity: int, *, minimum: int = 1, maximum: int | None = None) -> None:
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        super().__init__(f"Quantity must be {bounds} (got {quantity})", quantity=quantity)
        self.quantity = quantity


class EmptySale(SaleError):
    code = "EMPTY_SALE"
    http_status = 422

    def __init__(self) -> None:
        super().__init__("A sale must contain at least one line")


class SaleNotFound(SaleError):
    code = "SALE_NOT_FOUND"
    http_status = 404

    def __init__(self, sale_id: int) -> None:
        super().__init__(f"Sale {sale_id} not found", sale_id=sale_id)
        self.sale_id = sale_id


class AlreadyCancelled(SaleError):
    code = "ALREADY_CANCELLED"
    http_status = 409

    def __init__(self, sale_id: int) -> None:
        super().__init__(f"Sale {sale_id} is already cancelled", sale_id=sale_id)
        self.sale_id = sale_id


class SaleNotCompleted(SaleError):
    code = "SALE_NOT_COMPLETED"
    http_status = 409

    def __init__(self, sale_id: int, status: str) -> None:
        super().__init__(f"Sale {sale_id} cannot be cancelled from status '{status}'", sale_id=sale_id, status=status)
        self.sale_id = sale_id


class InvalidDateRange(SaleError):
    code = "INVALID_DATE_RANGE"
    http_status = 422


class Unauthenticated(SaleError):
    code = "UNAUTHENTICATED"
    http_status = 401


class PermissionDenied(SaleError):
    code = "INSUFFICIENT_PERMISSIONS"
    http_status = 403


class ServiceUnavailable(SaleError):
    """Erreurs transitoires du store épuisées après les retries."""

    code = "SERVICE_UNAVAILABLE"
    http_status = 503


__all__ = [
    "SaleError",
    "ProductNotFound",
    "ProductInactive",
    "InsufficientStock",
    "InvalidQuantity",
    "EmptySale",
    "SaleNotFound",
    "AlreadyCancelled",
    "SaleNotCompleted",
    "InvalidDateRange",
    "Unauthenticated",
    "PermissionDenied",
    "ServiceUnavailable",
]
