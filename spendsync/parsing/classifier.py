"""
Keyword classifier assigning a `Category` from merchant text.

Categories are tried in their declared order and keywords in theirs; the
first category with any keyword contained in the lowercased merchant wins.
`Others` is the catch-all and carries no keywords.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from spendsync.domain.models import Category

DEFAULT_KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (
        Category.FOOD,
        (
            "zomato", "swiggy", "uber eats", "food", "restaurant", "cafe", "dominos",
            "pizza", "burger", "mcdonalds", "kfc", "subway", "starbucks", "dunkin",
            "biryani", "dhaba", "kitchen", "mcdonald", "barbeque", "bbq", "dining",
            "eatery", "meal", "breakfast", "lunch", "dinner", "snack", "bakery",
        ),
    ),
    (
        Category.SHOPPING,
        (
            "amazon", "flipkart", "myntra", "ajio", "snapdeal", "shopping", "shop",
            "store", "mall", "retail", "meesho", "fashion", "clothing", "apparel",
            "electronics", "mobile", "laptop", "gadget", "footwear", "shoes", "bag",
            "watch", "jewellery", "accessories", "nykaa", "beauty", "cosmetics",
        ),
    ),
    (
        Category.BILLS,
        (
            "electricity", "water", "gas", "bill", "utility", "broadband", "internet",
            "wifi", "postpaid", "landline", "dth", "cable", "tata sky", "airtel",
            "rent", "emi", "insurance", "premium", "loan", "credit card", "payment",
        ),
    ),
    (
        Category.TRAVEL,
        (
            "uber", "ola", "rapido", "taxi", "cab", "metro", "bus", "train", "irctc",
            "flight", "airline", "indigo", "spicejet", "hotel", "booking", "makemytrip",
            "goibibo", "yatra", "cleartrip", "redbus", "fuel", "petrol", "diesel",
            "parking", "toll", "fastag", "travel",
        ),
    ),
    (
        Category.GROCERIES,
        (
            "bigbasket", "grofers", "blinkit", "zepto", "dunzo", "grocery", "vegetables",
            "fruits", "supermarket", "dmart", "reliance fresh", "more", "kirana",
            "provisions", "dairy", "milk", "bread", "egg",
        ),
    ),
    (
        Category.RECHARGE,
        (
            "recharge", "prepaid", "mobile recharge", "airtel", "jio", "vodafone",
            "vi", "bsnl", "topup", "top-up", "top up", "paytm", "phonepe", "gpay",
        ),
    ),
    (
        Category.ENTERTAINMENT,
        (
            "netflix", "prime", "hotstar", "disney", "spotify", "youtube", "movie",
            "theatre", "cinema", "pvr", "inox", "game", "gaming", "steam",
            "entertainment", "subscription", "music", "concert", "show", "event",
            "ticket", "bookmyshow",
        ),
    ),
    (
        Category.HEALTHCARE,
        (
            "hospital", "clinic", "doctor", "pharmacy", "medicine", "medical", "health",
            "apollo", "medplus", "netmeds", "1mg", "practo", "lab", "diagnostic",
            "test", "checkup", "consultation", "treatment",
        ),
    ),
)

FALLBACK_SUGGESTIONS: Tuple[Category, ...] = (
    Category.OTHERS,
    Category.SHOPPING,
    Category.FOOD,
)


class KeywordClassifier:
    """
    Ordered keyword rules per category.

    Each instance owns its own copy of the table, so `add_keyword` never leaks
    between classifiers.
    """

    def __init__(
        self,
        keywords: Optional[Sequence[Tuple[Category, Sequence[str]]]] = None,
    ) -> None:
        source = DEFAULT_KEYWORDS if keywords is None else keywords
        self._rules: List[Tuple[Category, List[str]]] = [
            (category, [keyword.lower() for keyword in words])
            for category, words in source
            if category is not Category.OTHERS
        ]

    @staticmethod
    def _normalize(merchant: str) -> str:
        return merchant.lower().strip()

    def classify(self, merchant: str) -> Category:
        text = self._normalize(merchant)
        for category, keywords in self._rules:
            for keyword in keywords:
                if keyword in text:
                    return category
        return Category.OTHERS

    def scores(self, merchant: str) -> Dict[Category, int]:
        text = self._normalize(merchant)
        return {
            category: sum(1 for keyword in keywords if keyword in text)
            for category, keywords in self._rules
        }

    def suggest(self, merchant: str, limit: int = 3) -> List[Category]:
        """
        Up to `limit` categories ranked by keyword hits, ties in declared order.

        Falls back to a fixed ordering when nothing matches.
        """
        ranked = sorted(
            ((category, score) for category, score in self.scores(merchant).items() if score > 0),
            key=lambda item: item[1],
            reverse=True,
        )
        if not ranked:
            return list(FALLBACK_SUGGESTIONS[:limit])
        return [category for category, _ in ranked[:limit]]

    def add_keyword(self, category: Category, keyword: str) -> None:
        if category is Category.OTHERS:
            raise ValueError("Others is the fallback category and takes no keywords")
        keyword = keyword.lower().strip()
        if not keyword:
            return
        for existing_category, keywords in self._rules:
            if existing_category is category:
                if keyword not in keywords:
                    keywords.append(keyword)
                return
        self._rules.append((category, [keyword]))


def all_categories() -> List[Category]:
    return list(Category)


_default = KeywordClassifier()


def classify(merchant: str) -> Category:
    return _default.classify(merchant)


def suggest(merchant: str) -> List[Category]:
    return _default.suggest(merchant)


__all__ = [
    "DEFAULT_KEYWORDS",
    "FALLBACK_SUGGESTIONS",
    "KeywordClassifier",
    "all_categories",
    "classify",
    "suggest",
]
