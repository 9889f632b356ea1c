# storefront_search/filters/product_validator.py

"""Product validation: normalise upstream records, drop malformed ones."""

import logging
from typing import Any

from storefront_search.models.product import MalformedProductError, Product

logger = logging.getLogger("storefront_search.filters")


class ProductValidator:
    """Turn raw collection-store records into Products at the boundary."""

    @staticmethod
    def validate(
        records: list[dict[str, Any]],
    ) -> tuple[list[Product], int]:
        """Drop records without an id or with an empty/whitespace title.

        Order of the surviving records is preserved.  Returns the
        valid products and the count of dropped records.
        """
        valid: list[Product] = []
        dropped = 0

        for record in records:
            if not isinstance(record, dict):
                logger.debug(
                    "Dropped non-object product record (%s)",
                    type(record).__name__,
                )
                dropped += 1
                continue
            try:
                product = Product.from_dict(record)
            except MalformedProductError as exc:
                logger.debug("Dropped malformed product: %s", exc)
                dropped += 1
                continue
            if not product.title.strip():
                logger.debug(
                    "Dropped product with empty title (id=%s)",
                    product.id,
                )
                dropped += 1
                continue
            valid.append(product)

        if dropped:
            logger.info(
                "Validation dropped %d malformed product records",
                dropped,
            )

        return valid, dropped
