"""
Payload normalization for loosely-shaped CRM webhook bodies.

CRM workflows post the same field at different nesting levels depending on how
the workflow was built: inside ``customData``, at the root, or under a nested
``contact`` / ``opportunity`` object. Every handler reads its fields through
:class:`PayloadView`, which tries those locations in that order.

Two reading modes exist:

* ``text`` / ``number`` / ``date_value`` return the first usable value or ``None``.
* ``field`` / ``number_field`` / ``date_field`` return :data:`MISSING` when no
  candidate key is present at all, and ``None`` when a key is present but empty.
  Partial updates only write keys that are not :data:`MISSING`.
"""
import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_NON_NUMERIC = re.compile(r"[^\d,.\-]")
_THOUSANDS = re.compile(r"-?\d{1,3}(,\d{3})+")
_ORDINAL = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
)
_DATE_FORMATS_NO_YEAR = ("%b %d %Y", "%B %d %Y", "%d %b %Y", "%d %B %Y")


def lookup(data: Any, path: str) -> Any:
    """Walk a dotted path through nested dicts; MISSING if any segment is absent"""
    current = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return MISSING
        current = current[part]
    return current


def clean_text(value: Any) -> Optional[str]:
    """Trimmed string, or None when absent, empty or not a scalar"""
    if value is None or value is MISSING or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a loosely formatted amount.

    Currency symbols and spaces are stripped. When both separators appear the
    rightmost one is the decimal mark; a lone comma is a thousands separator only
    in ``1,234`` groupings, otherwise a decimal comma. Never raises.
    """
    if value is None or value is MISSING or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = _NON_NUMERIC.sub("", str(value)).strip(".,")
    if not any(ch.isdigit() for ch in text):
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if _THOUSANDS.fullmatch(text):
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")

    try:
        return float(text)
    except ValueError:
        return None


def normalize_local_phone(value: Any, digits: int = 9) -> Optional[str]:
    """Keep the last `digits` digits (drops country code and punctuation)"""
    text = clean_text(value)
    if not text:
        return None
    only_digits = re.sub(r"\D", "", text)
    if len(only_digits) < digits:
        return None
    return only_digits[-digits:]


def to_e164(local_phone: Optional[str], country_code: str = "51") -> Optional[str]:
    if not local_phone:
        return None
    return f"+{country_code}{local_phone}"


def parse_date(value: Any, today: Optional[date] = None) -> Optional[date]:
    """
    Normalize the date formats CRM forms produce.

    Accepts ISO dates (optionally with a time part), day-first numeric dates and
    English month names with or without ordinals ("Jul 16th 2001", "Nov 11, 1995").
    A month and day without a year assume the current year.
    """
    text = clean_text(value)
    if not text:
        return None

    if re.match(r"^\d{4}-\d{2}-\d{2}[T ]", text):
        text = text[:10]
    text = _ORDINAL.sub(r"\1", text)
    text = " ".join(text.replace(",", " ").split())

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    year = (today or date.today()).year
    for fmt in _DATE_FORMATS_NO_YEAR:
        try:
            return datetime.strptime(f"{text} {year}", fmt).date()
        except ValueError:
            continue

    logger.warning("date_unparsable", value=text)
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601 timestamp as naive UTC; None when unparsable"""
    text = clean_text(value)
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("datetime_unparsable", value=text)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


class PayloadView:
    """Prioritized read access over a webhook body"""

    def __init__(self, raw: Any, nested: Tuple[str, ...] = ("contact", "opportunity")):
        self.raw = raw if isinstance(raw, dict) else {}
        self.nested = nested

    def candidates(self, key: str) -> List[str]:
        # Dotted keys are explicit paths; bare keys expand to every source
        if "." in key:
            return [key]
        return [f"customData.{key}", key] + [f"{name}.{key}" for name in self.nested]

    def _paths(self, keys: Iterable[str]) -> List[str]:
        paths: List[str] = []
        for key in keys:
            paths.extend(self.candidates(key))
        return paths

    def _first(self, keys: Iterable[str], convert: Callable[[Any], Any]) -> Any:
        for path in self._paths(keys):
            converted = convert(lookup(self.raw, path))
            if converted is not None:
                return converted
        return None

    def _field(self, keys: Iterable[str], convert: Callable[[Any], Any]) -> Any:
        present = False
        for path in self._paths(keys):
            raw_value = lookup(self.raw, path)
            if raw_value is MISSING:
                continue
            present = True
            converted = convert(raw_value)
            if converted is not None:
                return converted
        return None if present else MISSING

    def has(self, *keys: str) -> bool:
        return any(lookup(self.raw, path) is not MISSING for path in self._paths(keys))

    def text(self, *keys: str) -> Optional[str]:
        return self._first(keys, clean_text)

    def number(self, *keys: str) -> Optional[float]:
        return self._first(keys, parse_number)

    def date_value(self, *keys: str) -> Optional[date]:
        return self._first(keys, parse_date)

    def field(self, *keys: str) -> Any:
        return self._field(keys, clean_text)

    def number_field(self, *keys: str) -> Any:
        return self._field(keys, parse_number)

    def date_field(self, *keys: str) -> Any:
        return self._field(keys, parse_date)

    def full_name(self) -> Optional[str]:
        name = self.text("nombre_completo", "full_name", "fullName", "name")
        if name:
            return name
        parts = [self.text("firstName", "first_name"), self.text("lastName", "last_name")]
        joined = " ".join(part for part in parts if part)
        return joined or None

    def full_name_field(self) -> Any:
        """Tri-state full name: explicit name first, then first/last name keys"""
        name = self.field("nombre_completo", "full_name", "fullName")
        if name is not MISSING:
            return name
        if not self.has("firstName", "lastName", "first_name", "last_name"):
            return MISSING
        parts = [self.text("firstName", "first_name"), self.text("lastName", "last_name")]
        joined = " ".join(part for part in parts if part)
        return joined or None

    def custom_fields(self) -> List[Dict[str, Any]]:
        for path in ("contact.customFields", "customFields", "contact.customField", "customField"):
            value = lookup(self.raw, path)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, dict)]
        return []

    def custom_field(self, *needles: str) -> Optional[str]:
        """Value of the first custom field whose name contains any needle"""
        folded_needles = [_fold(needle) for needle in needles]
        for item in self.custom_fields():
            label = clean_text(item.get("name") or item.get("fieldKey") or item.get("key"))
            if not label:
                continue
            folded = _fold(label)
            if any(needle in folded for needle in folded_needles):
                value = item.get("value", item.get("field_value"))
                if isinstance(value, list):
                    value = ", ".join(str(v) for v in value if v is not None)
                text = clean_text(value)
                if text:
                    return text
        return None


def present_only(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys that were absent from the payload so they are not overwritten"""
    return {key: value for key, value in fields.items() if value is not MISSING}
