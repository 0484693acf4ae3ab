"""Presentation helpers for the catalog page."""

import re

EURO_AMOUNT_RE = re.compile(r"€[\d,]+")
PERCENT_RE = re.compile(r"\d+%")


def price_badges(price_text: str | None) -> dict[str, str | None]:
    """Split a raw storefront price string into display badges.

    Handles the German Shopify theme texts, e.g.
    - "€249,95"
    - "Angebot €199,95 Normaler Preis €249,95 Du sparst 20%"

    The stored text is left untouched; this only picks pieces out of it.
    """
    badges: dict[str, str | None] = {"current": None, "regular": None, "saving": None}
    text = (price_text or "").strip()
    if not text:
        return badges

    amounts = EURO_AMOUNT_RE.findall(text)
    badges["current"] = amounts[0] if amounts else text.split()[0]

    if "Normaler Preis" in text and len(amounts) > 1:
        badges["regular"] = amounts[1]

    if "Du sparst" in text and (match := PERCENT_RE.search(text)):
        badges["saving"] = match.group(0)

    return badges
