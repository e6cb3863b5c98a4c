"""
Sales package exports.

- CartLine
- CheckoutService
- build_sale / compute_discount
"""

from .checkout import CartLine, CheckoutService, build_sale, compute_discount

__all__ = ["CartLine", "CheckoutService", "build_sale", "compute_discount"]
