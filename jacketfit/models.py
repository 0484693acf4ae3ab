"""Data models for the catalog."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProductDescriptor:
    """A hand-maintained catalog entry to harvest."""

    id: str
    url: str


@dataclass
class ProductMeta:
    """A harvested product, as stored in `meta.json`."""

    id: str
    title: str
    url: str
    price_text: str = ""
    images: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "priceText": self.price_text,
            "images": list(self.images),
        }

    @classmethod
    def placeholder(cls, product_id: str) -> ProductMeta:
        """Record used for a product directory that has no metadata yet."""
        return cls(id=product_id, title=product_id, url="", price_text="", images=[])
