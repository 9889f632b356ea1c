# storefront_search/models/product.py

"""Product data model shared by the cache, loader and search index."""

import json
import re
from dataclasses import dataclass, field, replace
from typing import Any


class MalformedProductError(ValueError):
    """Raised when an upstream record cannot become a Product."""


def parse_price(value: Any) -> float:
    """Coerce a price given as number or string like '$1,299.00'."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace(",", "")
    numbers = re.findall(r"\d+\.?\d*", cleaned)
    return float(numbers[0]) if numbers else 0.0


def parse_handles(value: Any) -> tuple[str, ...]:
    """Normalise collection handles from a list, JSON string or bare handle."""
    if value is None:
        return ()
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return ()
        try:
            decoded = json.loads(text)
        except ValueError:
            return (text,)
        value = decoded if isinstance(decoded, list) else [text]
    if not isinstance(value, (list, tuple, set, frozenset)):
        return ()
    return tuple(h for h in value if isinstance(h, str) and h)


def _pick(record: dict[str, Any], *keys: str) -> Any:
    """Return the first present, non-None value among *keys*."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Variant:
    """A purchasable variant of a product."""

    id: str
    title: str = ""
    price: float = 0.0
    available: bool = True

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "Variant":
        """Build a Variant from an upstream variant record."""
        available = _pick(record, "available", "availableForSale")
        return cls(
            id=_text(record.get("id")),
            title=_text(record.get("title")),
            price=parse_price(record.get("price")),
            available=True if available is None else bool(available),
        )


@dataclass(frozen=True)
class Product:
    """Read-only projection of a catalog product.

    ``collection_handles`` is the set of collections the product
    belongs to; the cache layer guarantees that a product served
    under handle ``H`` lists ``H`` here.
    """

    id: str
    title: str
    price: float = 0.0
    image: str = ""
    images: tuple[str, ...] = ()
    category: str = ""
    vendor: str = ""
    product_type: str = ""
    search_category: str = ""
    handle: str = ""
    description: str = ""
    collection_handles: tuple[str, ...] = ()
    variants: tuple[Variant, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "Product":
        """Normalise an upstream record (snake_case or camelCase keys).

        Raises:
            MalformedProductError: when the record has no ``id``.
        """
        raw_id = record.get("id")
        if raw_id is None or _text(raw_id).strip() == "":
            raise MalformedProductError(
                f"Product record without id: {record.get('title')!r}"
            )

        raw_images = record.get("images") or []
        images = tuple(
            img if isinstance(img, str) else _text(img.get("src", ""))
            for img in raw_images
            if isinstance(img, (str, dict))
        )
        raw_variants = record.get("variants") or []

        return cls(
            id=_text(raw_id),
            title=_text(record.get("title")),
            price=parse_price(record.get("price")),
            image=_text(record.get("image")),
            images=tuple(i for i in images if i),
            category=_text(record.get("category")),
            vendor=_text(record.get("vendor")),
            product_type=_text(_pick(record, "product_type", "productType")),
            search_category=_text(
                _pick(record, "search_category", "searchCategory")
            ),
            handle=_text(record.get("handle")),
            description=_text(record.get("description")),
            collection_handles=parse_handles(
                _pick(record, "collection_handles", "collectionHandles")
            ),
            variants=tuple(
                Variant.from_dict(v)
                for v in raw_variants
                if isinstance(v, dict)
            ),
        )

    def with_collection(self, handle: str) -> "Product":
        """Return this product with *handle* added to its collections."""
        if handle in self.collection_handles:
            return self
        return replace(
            self, collection_handles=(*self.collection_handles, handle)
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON output."""
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "image": self.image,
            "images": list(self.images),
            "category": self.category,
            "vendor": self.vendor,
            "product_type": self.product_type,
            "search_category": self.search_category,
            "handle": self.handle,
            "collection_handles": list(self.collection_handles),
            "variants": [
                {
                    "id": v.id,
                    "title": v.title,
                    "price": v.price,
                    "available": v.available,
                }
                for v in self.variants
            ],
        }
