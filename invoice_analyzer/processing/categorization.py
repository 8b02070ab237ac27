import re
import logging
from typing import Any, Dict, List

# Import "dumb" DB methods directly from database module
from invoice_analyzer.storage.database import get_stored_category, update_product_category, upsert_item_mapping

logger = logging.getLogger(__name__)

# Product master categories, in match order. Anything unmatched is Dry Goods.
PRODUCT_CATEGORIES: Dict[str, List[str]] = {
    "Produce": ["tomato", "lettuce", "onion", "pepper", "orange", "tomatillo", "fresh", "produce"],
    "Protein": ["beef", "chicken", "fish", "tilapia", "protein", "meat"],
    "Dairy": ["cheese", "sour cream", "milk", "dairy", "cream"],
    "Supplies": ["bag", "container", "wrap", "cup", "supplies"],
    "Beverages": ["juice", "soda", "water", "beverage", "drink"],
}
DEFAULT_CATEGORY = "Dry Goods"

# Coarser buckets used by the monthly spending breakdown
SPENDING_CATEGORIES: Dict[str, List[str]] = {
    "Protein": ["beef", "chicken", "fish", "protein"],
    "Dairy": ["cheese", "dairy", "milk", "cream"],
    "Fresh Produce": ["fresh", "tomato", "lettuce", "pepper"],
    "Dry Goods": ["oil", "salt", "syrup", "sauce"],
    "Supplies": ["bag", "container", "supplies"],
}
DEFAULT_SPENDING_CATEGORY = "Other"

# Units, packaging, and size indicators
_UNITS = r"(?:lb|lbs|oz|fl\s*oz|ml|l|g|kg|ea|ct|pcs?|pack|case|cs|cn|bu|bag)"
_NUM = r"\d+(?:[.,]\d+)?"

# Matches size / quantity / packaging blocks
_SIZE_BLOCK_RE = re.compile(
    rf"""
    (?ix)
    \b(
        {_NUM}\s*(?:x|×)\s*{_NUM}\s*(?:{_UNITS})?   # 4 x 5 lb
        |
        {_NUM}\s*(?:-\s*{_NUM})?\s*(?:{_UNITS})    # 50 lb, 12-16 oz
        |
        \#\d+                                      # #10
    )\b
    """,
    re.VERBOSE,
)

# Remove parenthetical codes like ( SC4 )
_PAREN_RE = re.compile(r"\([^)]*\)")

# Keep letters, spaces, +, &
_CLEAN_RE = re.compile(r"[^\w\s\+\&]")


def clean_description(raw_description: str) -> str:
    """
    Extracts the core product name from noisy invoice descriptions.

    "TOMATO, #2 GRD RND BULK FRESH" -> "tomato grd rnd bulk fresh"
    """
    if not raw_description:
        return ""

    lines = [l.strip() for l in str(raw_description).splitlines() if l.strip()]
    if not lines:
        return ""
    s = lines[0].lower()

    s = _PAREN_RE.sub(" ", s)

    # Normalize separators
    s = s.replace(",", " ")
    s = re.sub(r"[_\-/]", " ", s)

    s = _SIZE_BLOCK_RE.sub(" ", s)

    # Remove residual standalone numbers
    s = re.sub(r"\b\d+\b", " ", s)

    s = _CLEAN_RE.sub(" ", s)

    return " ".join(t for t in s.split() if t)


def _match_keywords(description: str, rules: Dict[str, List[str]], default: str) -> str:
    desc = (description or "").lower()
    for category, keywords in rules.items():
        if any(keyword in desc for keyword in keywords):
            return category
    return default


def categorize_product(description: str) -> str:
    """Categorizes products based on description keywords."""
    return _match_keywords(description, PRODUCT_CATEGORIES, DEFAULT_CATEGORY)


def categorize_for_spending(description: str) -> str:
    """Simplified categorization for spending analysis."""
    return _match_keywords(description, SPENDING_CATEGORIES, DEFAULT_SPENDING_CATEGORY)


def get_line_item_category(description: str) -> str:
    """
    Category for a product description.

    A manual override stored in item_lookup_map wins over the keyword rules.
    """
    if not description:
        return DEFAULT_CATEGORY

    cleaned_description = clean_description(description)

    try:
        stored_category = get_stored_category(cleaned_description)
    except Exception as e:
        logger.warning(f"Category lookup failed for '{cleaned_description}': {e}")
        stored_category = None

    if stored_category:
        return stored_category

    return categorize_product(description)


def set_product_category(product_number: str, description: str, category: str) -> Dict[str, Any]:
    """Moves a product to `category` now and for every future import of its description."""
    upsert_item_mapping(clean_description(description), category)
    return update_product_category(product_number, category)
