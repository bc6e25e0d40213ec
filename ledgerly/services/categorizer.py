"""Expense auto-categorization using a keyword table and the AI adapter."""

from typing import List, Optional, Tuple

from aws_lambda_powertools import Logger

from ledgerly.models.entities import ExpenseCategory


# Initialize structured logger
logger = Logger(service="ledgerly-categorizer")

# Checked in order; the first category with a matching keyword wins.
KEYWORD_RULES: List[Tuple[ExpenseCategory, Tuple[str, ...]]] = [
    (ExpenseCategory.RENT_OR_MORTGAGE, ('rent', 'mortgage', 'house', 'landlord', 'hoa')),
    (ExpenseCategory.UTILITIES, ('electric', 'utility', 'utilities', 'water bill', 'sewer', 'trash', 'power bill')),
    (ExpenseCategory.INTERNET_AND_PHONE, ('internet', 'phone', 'wifi', 'broadband', 'cell plan')),
    (ExpenseCategory.INSURANCE, ('insurance', 'premium')),
    (ExpenseCategory.DEBT_PAYMENTS, ('loan', 'debt', 'credit card', 'credit')),
    (ExpenseCategory.CHILDCARE_OR_TUITION, ('daycare', 'childcare', 'tuition', 'school', 'babysit', 'course')),
    (ExpenseCategory.MEDICAL, ('doctor', 'hospital', 'medicine', 'pharmacy', 'dental', 'clinic', 'prescription')),
    (ExpenseCategory.GROCERIES, ('grocery', 'groceries', 'supermarket', 'food')),
    (ExpenseCategory.SUBSCRIPTIONS, ('subscription', 'membership', 'netflix', 'spotify', 'gym')),
    (ExpenseCategory.PET_EXPENSES, ('vet', 'veterinar', 'pet store', 'pet supplies', 'grooming')),
    (ExpenseCategory.ENTERTAINMENT_AND_DINING, ('restaurant', 'dining', 'movie', 'entertainment', 'game',
                                               'concert', 'cafe', 'coffee', 'theater')),
    (ExpenseCategory.PERSONAL_CARE, ('haircut', 'salon', 'clothing', 'clothes', 'shoes', 'cosmetic')),
    (ExpenseCategory.SAVINGS_AND_INVESTMENTS, ('investment', 'brokerage', '401k', 'roth')),
    (ExpenseCategory.SAVINGS, ('savings',)),
    (ExpenseCategory.TRANSPORTATION, ('car', 'gas', 'fuel', 'uber', 'lyft', 'bus', 'train', 'parking', 'transit')),
]


def categorize_expense(description: str) -> ExpenseCategory:
    """Categorize an expense description by keyword.

    Case-insensitive substring match against KEYWORD_RULES.

    Args:
        description: Free-text description

    Returns:
        Matching category, or Miscellaneous when nothing matches
    """
    text = (description or '').lower()

    for category, keywords in KEYWORD_RULES:
        for keyword in keywords:
            if keyword in text:
                logger.debug(
                    "Keyword match",
                    extra={
                        "categorization_source": "keywords",
                        "keyword": keyword,
                        "category": category.value,
                        "description_preview": text[:50]
                    }
                )
                return category

    return ExpenseCategory.MISCELLANEOUS


def match_category_name(name: str) -> Optional[ExpenseCategory]:
    """Map a category name (any case) to an ExpenseCategory.

    Args:
        name: Category display value or enum member name

    Returns:
        Category, or None when unknown
    """
    cleaned = (name or '').strip().strip('."\'').lower()
    if not cleaned:
        return None

    for category in ExpenseCategory:
        if cleaned in (category.value.lower(), category.name.lower()):
            return category
    return None


def suggest_category(description: str, use_ai: bool = True) -> Tuple[ExpenseCategory, str]:
    """Suggest a category, asking the AI adapter only when keywords fail.

    Args:
        description: Free-text description
        use_ai: Whether the AI second pass is allowed

    Returns:
        Tuple of (category, source) where source is 'keywords', 'ai' or 'none'
    """
    category = categorize_expense(description)
    if category != ExpenseCategory.MISCELLANEOUS:
        return category, 'keywords'

    if not use_ai:
        return category, 'none'

    # Lazy import, advisor falls back to this module
    from ledgerly.services import advisor

    outcome = advisor.categorize(description)
    if outcome.ok:
        logger.info(
            "AI categorization",
            extra={
                "categorization_source": "ai",
                "category": outcome.value.value,
                "description_preview": description[:50]
            }
        )
        return outcome.value, 'ai'

    return category, 'none'
