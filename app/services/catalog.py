"""
Subscription product catalog.

The in-app purchase offerings and the family limits each one unlocks. The
default product is the free tier every family has without a purchase.
"""
from dataclasses import dataclass
from typing import Dict, Optional

NUMBER_OF_DOGS_PER_FAMILY = 10

DEFAULT_SUBSCRIPTION_PRODUCT_ID = "com.jonathanxakellis.hound.default"


@dataclass(frozen=True)
class Product:
    """A subscription product and the entitlement it grants."""
    product_id: str
    number_of_family_members: int
    number_of_dogs: int


SUBSCRIPTIONS: Dict[str, Product] = {
    product.product_id: product
    for product in (
        Product(DEFAULT_SUBSCRIPTION_PRODUCT_ID, 1, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.twofamilymemberstwodogs.monthly", 2, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.fourfamilymembersfourdogs.monthly", 4, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.sixfamilymemberssixdogs.monthly", 6, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.tenfamilymemberstendogs.monthly", 10, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.sixfamilymembers.onemonth", 6, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.sixfamilymembers.sixmonth", 6, NUMBER_OF_DOGS_PER_FAMILY),
        Product("com.jonathanxakellis.hound.sixfamilymembers.oneyear", 6, NUMBER_OF_DOGS_PER_FAMILY),
    )
}


def get_product(product_id: Optional[str]) -> Optional[Product]:
    """Look up a catalog product, None for unknown ids."""
    if product_id is None:
        return None
    return SUBSCRIPTIONS.get(product_id)


def get_default_product() -> Product:
    return SUBSCRIPTIONS[DEFAULT_SUBSCRIPTION_PRODUCT_ID]
