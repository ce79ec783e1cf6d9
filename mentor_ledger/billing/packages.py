"""
Token packages sold through the payment processor.

Orders carry the buyer and the package in the processor's ``order_id`` as
``user_<user_id>_pkg_<package>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

ORDER_PREFIX = "user_"
PACKAGE_SEPARATOR = "_pkg_"


@dataclass(frozen=True)
class TokenPackage:
    """A purchasable bundle of units."""

    key: str
    units: int
    price_cents: int
    label: str


TOKEN_PACKAGES: Mapping[str, TokenPackage] = {
    package.key: package
    for package in (
        TokenPackage("100k", 100_000, 500, "100K tokens"),
        TokenPackage("500k", 500_000, 2000, "500K tokens"),
        TokenPackage("1m", 1_000_000, 3500, "1M tokens"),
        TokenPackage("5m", 5_000_000, 15000, "5M tokens"),
    )
}


def get_package(key: str, packages: Mapping[str, TokenPackage] = TOKEN_PACKAGES) -> Optional[TokenPackage]:
    return packages.get(key)


def build_order_id(user_id: str, package_key: str) -> str:
    """Order id sent to the processor when a payment is created."""
    if PACKAGE_SEPARATOR in package_key:
        raise ValueError(f"Invalid package key {package_key!r}")
    return f"{ORDER_PREFIX}{user_id}{PACKAGE_SEPARATOR}{package_key}"


def parse_order_id(order_id: str) -> Optional[Tuple[str, str]]:
    """Split an order id into ``(user_id, package_key)``.

    The package key is taken after the last separator, so user ids may
    contain underscores.

    Returns:
        None when the order id does not follow the expected format
    """
    if not order_id.startswith(ORDER_PREFIX):
        return None
    user_id, separator, package_key = order_id[len(ORDER_PREFIX) :].rpartition(PACKAGE_SEPARATOR)
    if not separator or not user_id or not package_key:
        return None
    return user_id, package_key


def package_catalog(packages: Mapping[str, TokenPackage] = TOKEN_PACKAGES) -> Dict[str, Dict[str, object]]:
    """Catalog shown to users choosing a package."""
    return {
        key: {"units": package.units, "price_cents": package.price_cents, "label": package.label}
        for key, package in packages.items()
    }
