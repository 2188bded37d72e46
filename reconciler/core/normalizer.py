"""Rule-table-driven canonicalization of single field values."""

from typing import Any, Dict, List, Optional, Protocol, Type
from abc import ABC, abstractmethod
import pandas as pd
import regex as re

from reconciler.config.rules import (
    ABBREVIATION_TABLES,
    PHONE_COUNTRY_PREFIXES,
    PHONE_MIN_LENGTH,
    PHONE_STANDARD_LENGTH,
)

_WHITESPACE = re.compile(r'\s+')
_NON_DIGIT = re.compile(r'\D')
_NOISE = re.compile(r'[^\w\s]')
_NUMBER_FORMATTING = re.compile(r'[$,\s]')

_PHONE_LIKE = re.compile(r'[\d()\-\s]{7,}')
_DIGIT_RUN = re.compile(r'\d{3,}')
_FORMATTED_NUMBER = re.compile(r'^\$?[\d,]+\.?\d*$')


def is_missing(value: Any) -> bool:
    """Check if a cell value is null/NaN."""
    if value is None:
        return True
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


def to_text(value: Any) -> str:
    """
    Stringify a cell value, reading null/NaN as an empty string.

    Booleans are written in lowercase ('true'/'false').
    """
    if is_missing(value):
        return ''
    if pd.api.types.is_bool(value):
        return 'true' if value else 'false'
    return str(value)


def normalize_string(value: Any) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(' ', to_text(value).lower().strip())


def normalize_abbreviations(text: str) -> str:
    """Replace every known variant spelling with its canonical form."""
    if not text:
        return ''

    normalized = text.lower().strip()
    for table in ABBREVIATION_TABLES:
        normalized = table.apply(normalized)
    return normalized


def normalize_phone_number(phone: str) -> str:
    """Keep digits only, dropping a leading country code on long numbers."""
    if not phone:
        return ''

    digits = _NON_DIGIT.sub('', phone)
    if (len(digits) > PHONE_STANDARD_LENGTH and
            digits.startswith(PHONE_COUNTRY_PREFIXES)):
        return digits[-PHONE_STANDARD_LENGTH:]
    return digits


def normalize_email(email: str) -> str:
    if not email:
        return ''
    return email.lower().strip()


def remove_noise(text: str) -> str:
    """Strip punctuation, collapse whitespace and lowercase."""
    if not text:
        return ''

    text = _NOISE.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip().lower()


def normalize_number(num: str) -> str:
    """Remove currency symbols, thousands separators and spaces."""
    if not num:
        return ''
    return _NUMBER_FORMATTING.sub('', num)


class Preprocessor(Protocol):
    """Anything that turns a raw cell value into a comparable string."""
    def process(self, value: Any) -> str:
        ...


class BasePreprocessor(ABC):
    """Shared null handling for the field preprocessors."""

    @abstractmethod
    def process(self, value: Any) -> str:
        """Canonicalize one cell value; missing values become ''."""
        pass

    def _handle_null(self, value: Any) -> bool:
        """Check if value is null/empty."""
        return is_missing(value) or to_text(value) == ''


class PhonePreprocessor(BasePreprocessor):
    """Digits only, without a leading 1 or 44 country prefix."""

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        return normalize_phone_number(to_text(value))


class EmailPreprocessor(BasePreprocessor):
    """Trimmed, lowercased address."""

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        return normalize_email(to_text(value))


class NumberPreprocessor(BasePreprocessor):
    """Amount without currency sign, separators or spaces."""

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        return normalize_number(to_text(value))


class TextPreprocessor(BasePreprocessor):
    """Abbreviation expansion followed by noise removal."""

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''
        return remove_noise(normalize_abbreviations(to_text(value)))


class SmartPreprocessor(BasePreprocessor):
    """
    Sniffs the kind of value and applies the preprocessor registered for it.

    The kinds are 'phone', 'email', 'number' and 'text'. Registering another
    class under one of these names changes how that kind is normalized.
    """

    def __init__(self, preprocessors: Optional["PreprocessorRegistry"] = None):
        """
        Initialize the smart preprocessor.

        Args:
            preprocessors: Registry to resolve kinds with; the module-level
                registry is used when omitted
        """
        self.preprocessors = preprocessors

    def detect(self, value: Any) -> str:
        """
        Detect which normalization applies to a value.

        Args:
            value: Raw cell value

        Returns:
            str: One of 'phone', 'email', 'number' or 'text'
        """
        text = to_text(value).strip()

        if _PHONE_LIKE.search(text) and _DIGIT_RUN.search(text):
            if len(normalize_phone_number(text)) >= PHONE_MIN_LENGTH:
                return 'phone'

        if '@' in text:
            return 'email'

        if _FORMATTED_NUMBER.match(text):
            return 'number'

        return 'text'

    def process(self, value: Any) -> str:
        if self._handle_null(value):
            return ''

        text = to_text(value).strip()
        preprocessors = self.preprocessors or registry
        return preprocessors.create(self.detect(text)).process(text)


class PreprocessorRegistry:
    """Maps preprocessor names to the classes that implement them."""

    def __init__(self):
        self._preprocessors: Dict[str, Type[BasePreprocessor]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self.register('phone', PhonePreprocessor)
        self.register('email', EmailPreprocessor)
        self.register('number', NumberPreprocessor)
        self.register('text', TextPreprocessor)
        self.register('smart', SmartPreprocessor)

    def register(self, name: str, preprocessor_class: Type[BasePreprocessor]) -> None:
        """Add or replace the class registered under a name."""
        self._preprocessors[name] = preprocessor_class

    def create(self, name: str, **kwargs: Any) -> BasePreprocessor:
        """
        Instantiate the preprocessor registered under a name.

        Args:
            name: 'phone', 'email', 'number', 'text', 'smart' or a
                registered name
            **kwargs: Passed to the preprocessor constructor

        Returns:
            BasePreprocessor: New preprocessor

        Raises:
            ValueError: If nothing is registered under the name
        """
        preprocessor_class = self._preprocessors.get(name)
        if not preprocessor_class:
            raise ValueError(f"Unknown preprocessor type: {name}")

        return preprocessor_class(**kwargs)


# Consulted by smart_normalize
registry = PreprocessorRegistry()

_smart = SmartPreprocessor()


def register_preprocessor(name: str, preprocessor_class: Type[BasePreprocessor]) -> None:
    """
    Register a preprocessor in the module-level registry.

    Registering under 'phone', 'email', 'number' or 'text' changes what
    smart_normalize does for that kind of value.

    Args:
        name: Name to register the preprocessor under
        preprocessor_class: Preprocessor class to register
    """
    registry.register(name, preprocessor_class)


def smart_normalize(value: Any) -> str:
    """Type-sniffing normalization used before similarity scoring."""
    return _smart.process(value)


def generate_variations(text: Any) -> List[str]:
    """
    Create up to five distinct normalized forms of a value.

    The order is stable: raw-lowercased, smart-normalized, abbreviation
    expanded, noise removed and whitespace-token-sorted.

    Args:
        text: Raw value

    Returns:
        List[str]: Distinct variations in generation order
    """
    text = to_text(text)
    if not text:
        return ['']

    lowered = text.lower().strip()
    variations = [
        lowered,
        smart_normalize(text),
        normalize_abbreviations(text),
        remove_noise(text),
        ' '.join(sorted(lowered.split())),
    ]
    return list(dict.fromkeys(variations))
