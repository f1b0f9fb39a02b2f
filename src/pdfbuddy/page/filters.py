"""Content filter: map user-chosen category flags to selectors to hide.

Pure decision logic. The resulting selectors are handed to the page
preparer, which hides them in the same injected stylesheet as its own
fixed noise list.
"""

from __future__ import annotations

from pdfbuddy.models.capture import ContentFilters

# Overlays that never belong in a capture, regardless of user flags.
NOISE_SELECTORS: tuple[str, ...] = (
    ".cookie-notice",
    ".cookie-banner",
    '[class*="cookie"]',
    '[id*="cookie"]',
    '[class*="consent"]',
    '[id*="consent"]',
    ".modal-backdrop",
    '[class*="popup"]',
    '[id*="popup"]',
    '[class*="overlay"]',
    '[aria-modal="true"]',
)

IMAGE_SELECTORS: tuple[str, ...] = (
    "img",
    "picture",
    "svg image",
    '[role="img"]',
)

BANNER_SELECTORS: tuple[str, ...] = (
    ".banner",
    '[class*="banner"]',
    '[id*="banner"]',
    '[role="banner"]',
    ".promo",
    '[class*="promo"]',
)

AD_SELECTORS: tuple[str, ...] = (
    ".ad",
    ".ads",
    ".advertisement",
    '[class*="advert"]',
    '[id*="advert"]',
    '[class*="sponsor"]',
    "ins.adsbygoogle",
    'iframe[src*="doubleclick"]',
    'iframe[src*="googlesyndication"]',
)

NAV_SELECTORS: tuple[str, ...] = (
    "nav",
    '[role="navigation"]',
    ".navbar",
    ".nav",
    ".menu",
    ".breadcrumb",
    ".sidebar",
    "aside",
)


def selectors_to_hide(filters: ContentFilters | None = None) -> list[str]:
    """Return the selectors hidden by *filters* (defaults when ``None``).

    A category is only ever hidden when its include flag is False, so no
    flag can remove content the user asked to keep.
    """
    filters = filters or ContentFilters()
    hidden: list[str] = []
    if not filters.include_images:
        hidden.extend(IMAGE_SELECTORS)
    if not filters.include_banners:
        hidden.extend(BANNER_SELECTORS)
    if not filters.include_ads:
        hidden.extend(AD_SELECTORS)
    if not filters.include_nav:
        hidden.extend(NAV_SELECTORS)
    return hidden


def compose_hide_list(filters: ContentFilters | None = None) -> list[str]:
    """Merge the noise list with the filter selectors, de-duplicated in order."""
    seen: set[str] = set()
    merged: list[str] = []
    for selector in (*NOISE_SELECTORS, *selectors_to_hide(filters)):
        if selector not in seen:
            seen.add(selector)
            merged.append(selector)
    return merged
