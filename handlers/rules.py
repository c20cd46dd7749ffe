"""Named extraction rules used by the receipt handlers.

Each rule works on the text of a single recognized line and is free of
handler state, so rules can be tuned and tested one at a time. The handlers
decide which lines a rule is applied to and in which order.
"""

import re
import math
import logging
from collections import namedtuple
from datetime import datetime
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

MAX_ITEM_PRICE = 10000.0
MAX_RECEIPT_AMOUNT = 100000.0

# Price-shaped token. Tolerates O/o read for 0, comma decimals and
# thousands separators. Never starts inside a longer number.
PRICE_TOKEN_PATTERN = re.compile(
    r'(?<![\d.,])'
    r'(\d{1,3}(?:,\d{3})+\.\d{2}|\d[\dOo]*[.,][\dOo]{1,2})'
    r'(?![\dOo]|[.,]\d)'
)
THOUSANDS_PATTERN = re.compile(r'^\d{1,3}(?:,\d{3})+\.\d{2}$')

NON_ITEM_PATTERNS = [
    re.compile(r'^\s*$'),
    re.compile(r'\b(?:sub\s*-?\s*)?total\b', re.IGNORECASE),
    re.compile(r'\btax\b', re.IGNORECASE),
    re.compile(r'\bamount\s*due\b', re.IGNORECASE),
    re.compile(r'\bbalance\s*due\b|^\s*balance\s*:?\s*\$?\s*\d', re.IGNORECASE),
    re.compile(r'^\s*change\b', re.IGNORECASE),
    re.compile(r'^\s*cash\b', re.IGNORECASE),
    re.compile(r'^\s*card\b', re.IGNORECASE),
    re.compile(r'^\s*payment\b', re.IGNORECASE),
    re.compile(r'^\s*(?:visa|mastercard|amex|discover|debit|credit)\b', re.IGNORECASE),
    re.compile(r'^\s*receipt\b', re.IGNORECASE),
    re.compile(r'^\s*thank\s*you\b', re.IGNORECASE),
    re.compile(r'^\s*date\b', re.IGNORECASE),
    re.compile(r'^\s*time\b', re.IGNORECASE),
    re.compile(r'^\s*cashier\b', re.IGNORECASE),
    # Lines holding nothing but a date
    re.compile(r'^\s*\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\s*$'),
    re.compile(r'^\s*\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}\s*$'),
]

LEADING_QUANTITY_PATTERN = re.compile(r'^\s*(\d+)\s*x(?=\s|\d|$)\s*', re.IGNORECASE)
INFIX_QUANTITY_PATTERN = re.compile(r'(\d+)\s*@|qty:\s*(\d+)|quantity:\s*(\d+)', re.IGNORECASE)
TRAILING_QUANTITY_PATTERN = re.compile(r'\s*(?:\d+\s*@|qty:\s*\d+|quantity:\s*\d+)\s*$', re.IGNORECASE)
LEADING_QUANTITY_PREFIX = re.compile(r'^\s*\d+\s*(?:x(?=\s|\d|$)|@)\s*', re.IGNORECASE)
BARCODE_SUFFIX = re.compile(r'\s+\d{10,}\s*[A-Z]?\s*$')
FLAG_SUFFIX = re.compile(r'\s+[A-Z]\s*$')

# Labels for receipt-level amounts
TOTAL_LABEL = re.compile(
    r'(?<![a-z])(?<!sub)(?<!sub\s)(?<!sub-)total\b'
    r'(?!\s*(?:savings|saved|items?|discount|qty|quantity)\b)',
    re.IGNORECASE
)
GRAND_TOTAL_LABEL = re.compile(r'\bgrand\s*total\b', re.IGNORECASE)
AMOUNT_DUE_LABEL = re.compile(r'\bamount\s*due\b', re.IGNORECASE)
BALANCE_LABEL = re.compile(r'\bbalance\s*due\b|^\s*balance(?=\s*:?\s*\$?\s*\d)', re.IGNORECASE)
SUBTOTAL_LABEL = re.compile(r'\bsub\s*-?\s*total\b', re.IGNORECASE)
TAX_LABEL = re.compile(r'\btax\b', re.IGNORECASE)

TOTAL_LABELS = [GRAND_TOTAL_LABEL, TOTAL_LABEL, AMOUNT_DUE_LABEL, BALANCE_LABEL]

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12
}
_MONTH_NAMES = r'(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?'

ISO_DATE_PATTERN = re.compile(r'(?<!\d)(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?!\d)')
NUMERIC_DATE_PATTERN = re.compile(r'(?<!\d)(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})(?!\d)')
MONTH_DAY_YEAR_PATTERN = re.compile(r'\b' + _MONTH_NAMES + r'\s+(\d{1,2}),?\s+(\d{4})\b', re.IGNORECASE)
DAY_MONTH_YEAR_PATTERN = re.compile(r'\b(\d{1,2})\s+' + _MONTH_NAMES + r',?\s+(\d{4})\b', re.IGNORECASE)

DATE_FORMAT_CODES = {'MM': '%m', 'DD': '%d', 'YYYY': '%Y', 'YY': '%y'}

MERCHANT_KEYWORDS = re.compile(r'store|shop|market|mart|inc|ltd|llc|corp', re.IGNORECASE)
MERCHANT_EXCLUDE_PATTERNS = [
    re.compile(r'receipt|invoice|bill', re.IGNORECASE),
    re.compile(r'\d{3,}'),
    re.compile(r'^\d+$'),
    re.compile(r'thank\s*you|thanks', re.IGNORECASE),
    re.compile(r'welcome|visit', re.IGNORECASE),
    re.compile(r'\$?\d+[.,]\d{2}'),
]
TITLE_CASE_PATTERN = re.compile(r'^[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*$')

PriceMatch = namedtuple('PriceMatch', ['value', 'start', 'end', 'token'])


def is_non_item_line(text: str) -> bool:
    """True when a line is a header, footer, total or other non-item line."""
    return any(pattern.search(text or '') for pattern in NON_ITEM_PATTERNS)


def normalize_amount(token: str) -> Optional[float]:
    """Convert a price-shaped token into a float.

    O/o become 0 and the decimal separator becomes a dot. Returns None when
    the token is not a finite number.
    """
    cleaned = token.replace('O', '0').replace('o', '0')
    if THOUSANDS_PATTERN.match(cleaned):
        cleaned = cleaned.replace(',', '')
    else:
        cleaned = cleaned.replace(',', '.')
    try:
        value = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return round(value, 2)


def iter_price_tokens(text: str) -> List[PriceMatch]:
    """All price-shaped tokens of a line, left to right."""
    matches = []
    for match in PRICE_TOKEN_PATTERN.finditer(text or ''):
        value = normalize_amount(match.group(1))
        if value is not None:
            matches.append(PriceMatch(value, match.start(1), match.end(1), match.group(1)))
    return matches


def find_price(text: str, max_price: float = MAX_ITEM_PRICE) -> Optional[PriceMatch]:
    """
    Locate the item price on a line.

    Only the first price-shaped token counts. When it is not a plausible
    item price (<= 0 or above ``max_price``) the line has no price.
    """
    tokens = iter_price_tokens(text)
    if not tokens:
        return None
    first = tokens[0]
    if first.value <= 0 or first.value > max_price:
        logger.debug(f"Rejected price {first.token!r} in line: {text}")
        return None
    return first


def detect_quantity(text: str) -> int:
    """Quantity from a leading ``N x`` prefix or an ``N @`` / ``qty: N`` marker."""
    match = LEADING_QUANTITY_PATTERN.match(text or '')
    if match:
        return max(1, int(match.group(1)))
    match = INFIX_QUANTITY_PATTERN.search(text or '')
    if match:
        value = next(group for group in match.groups() if group is not None)
        return max(1, int(value))
    return 1


def clean_item_name(text: str, currency_symbol: str = '$') -> str:
    """Tidy the text preceding a price into an item name."""
    name = (text or '').strip()
    if currency_symbol and name.endswith(currency_symbol):
        name = name[:-len(currency_symbol)].rstrip()
    name = BARCODE_SUFFIX.sub('', name)
    name = TRAILING_QUANTITY_PATTERN.sub('', name)
    name = FLAG_SUFFIX.sub('', name)
    name = LEADING_QUANTITY_PREFIX.sub('', name)
    return re.sub(r'\s+', ' ', name).strip()


def find_labeled_amount(text: str, labels: Iterable[re.Pattern],
                        max_amount: float = MAX_RECEIPT_AMOUNT) -> Optional[float]:
    """
    Amount following one of ``labels`` on a line.

    The first amount after the label is used, so tendered cash or change
    printed on the same line is ignored. Percentages such as a tax rate
    are skipped. Returns None when no label matches or the amount is
    outside (0, max_amount).
    """
    text = text or ''
    for label in labels:
        match = label.search(text)
        if not match:
            continue
        rest = text[match.end():]
        amounts = [t for t in iter_price_tokens(rest) if not rest[t.end:].lstrip().startswith('%')]
        if not amounts:
            continue
        amount = amounts[0].value
        if 0 < amount < max_amount:
            return amount
    return None


def is_total_candidate(text: str) -> bool:
    """Subtotal and tax lines never provide the total."""
    return not (SUBTOTAL_LABEL.search(text or '') or TAX_LABEL.search(text or ''))


def to_strptime_format(date_format: str) -> str:
    """Convert a ``MM/DD/YYYY`` style format into a strptime format."""
    return re.sub(r'YYYY|YY|MM|DD', lambda m: DATE_FORMAT_CODES[m.group(0)], date_format.upper())


def parse_date_token(token: str, date_formats: Iterable[str]) -> Optional[datetime]:
    """Parse a numeric date token with the first matching format."""
    parts = re.split(r'[/\-.]', token)
    for date_format in date_formats:
        fields = re.split(r'[/\-.]', date_format.upper())
        if len(fields) != len(parts):
            continue
        codes = []
        for field, part in zip(fields, parts):
            code = DATE_FORMAT_CODES.get(field)
            if code is None:
                break
            if code == '%Y' and len(part) == 2:
                code = '%y'
            codes.append(code)
        else:
            try:
                return datetime.strptime('/'.join(parts), '/'.join(codes))
            except ValueError:
                continue
    return None


def _month_date(year: str, month: str, day: str) -> Optional[datetime]:
    try:
        return datetime(int(year), MONTHS[month.lower()[:3]], int(day))
    except (KeyError, ValueError):
        return None


def date_candidates(text: str, date_formats: Iterable[str]) -> List[datetime]:
    """Every date a line could be read as, in pattern priority order."""
    text = text or ''
    date_formats = list(date_formats)
    candidates = []
    for match in ISO_DATE_PATTERN.finditer(text):
        try:
            candidates.append(datetime(int(match.group(1)), int(match.group(2)), int(match.group(3))))
        except ValueError:
            continue
    for match in NUMERIC_DATE_PATTERN.finditer(text):
        parsed = parse_date_token(match.group(1), date_formats)
        if parsed:
            candidates.append(parsed)
    for match in MONTH_DAY_YEAR_PATTERN.finditer(text):
        parsed = _month_date(match.group(3), match.group(1), match.group(2))
        if parsed:
            candidates.append(parsed)
    for match in DAY_MONTH_YEAR_PATTERN.finditer(text):
        parsed = _month_date(match.group(3), match.group(2), match.group(1))
        if parsed:
            candidates.append(parsed)
    return candidates


def is_plausible_date(value: datetime, reference: datetime) -> bool:
    """Dates must fall between Jan 1 five years back and Dec 31 next year."""
    earliest = datetime(reference.year - 5, 1, 1)
    latest = datetime(reference.year + 1, 12, 31, 23, 59, 59)
    return earliest <= value <= latest


def find_date(text: str, date_formats: Iterable[str],
              reference: Optional[datetime] = None) -> Optional[datetime]:
    """First plausible date on a line."""
    reference = reference or datetime.now()
    for candidate in date_candidates(text, date_formats):
        if is_plausible_date(candidate, reference):
            return candidate
    return None


def is_merchant_candidate(text: str) -> bool:
    """Lines that could hold a merchant name."""
    text = (text or '').strip()
    if len(text) < 3 or not any(c.isalpha() for c in text):
        return False
    return not any(pattern.search(text) for pattern in MERCHANT_EXCLUDE_PATTERNS)


def score_merchant_candidate(text: str, confidence: float, index: int) -> float:
    """
    Score a header line as the merchant name.

    Starts from the line confidence and adds bonuses for merchant keywords,
    position near the top, title case or all caps, and a 5-30 character length.
    """
    text = (text or '').strip()
    score = confidence
    if MERCHANT_KEYWORDS.search(text):
        score += 0.2
    if index == 0:
        score += 0.15
    elif index == 1:
        score += 0.1
    if TITLE_CASE_PATTERN.match(text):
        score += 0.1
    if text == text.upper() and len(text) > 3:
        score += 0.1
    if 5 <= len(text) <= 30:
        score += 0.05
    return score
