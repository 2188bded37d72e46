"""Normalization rule tables and scoring constants for the reconciliation system."""

from abc import ABC, abstractmethod
from typing import Dict, List, Type
from dataclasses import dataclass
import regex as re

# Canonical form -> variant spellings. Tables are applied in declaration order.
STREET_ABBREVIATIONS: Dict[str, List[str]] = {
    'street': ['st', 'str', 'street'],
    'avenue': ['ave', 'av', 'avenue'],
    'road': ['rd', 'road'],
    'drive': ['dr', 'drv', 'drive'],
    'lane': ['ln', 'lane'],
    'boulevard': ['blvd', 'boulevard', 'boul'],
    'court': ['ct', 'court'],
    'place': ['pl', 'place'],
    'square': ['sq', 'square'],
    'terrace': ['ter', 'terrace'],
    'parkway': ['pkwy', 'parkway', 'pky'],
    'circle': ['cir', 'circle'],
    'highway': ['hwy', 'highway'],
}

COMPANY_SUFFIXES: Dict[str, List[str]] = {
    'incorporated': ['inc', 'incorporated', 'incorp'],
    'corporation': ['corp', 'corporation'],
    'company': ['co', 'company'],
    'limited': ['ltd', 'limited'],
    'llc': ['llc', 'limited liability company', 'limited liability co'],
    'llp': ['llp', 'limited liability partnership'],
    'plc': ['plc', 'public limited company'],
    'group': ['grp', 'group'],
    'international': ['intl', 'international', 'int'],
}

COUNTRY_VARIATIONS: Dict[str, List[str]] = {
    'usa': ['usa', 'us', 'united states', 'united states of america', 'america'],
    'uk': ['uk', 'united kingdom', 'great britain', 'gb', 'britain'],
    'uae': ['uae', 'united arab emirates'],
    'canada': ['ca', 'can', 'canada'],
    'australia': ['au', 'aus', 'australia'],
    'germany': ['de', 'ger', 'germany', 'deutschland'],
    'france': ['fr', 'fra', 'france'],
    'japan': ['jp', 'jpn', 'japan'],
    'china': ['cn', 'chn', 'china', 'prc'],
    'india': ['in', 'ind', 'india'],
}

TITLE_ABBREVIATIONS: Dict[str, List[str]] = {
    'doctor': ['dr', 'doc', 'doctor'],
    'mister': ['mr', 'mister'],
    'mistress': ['mrs', 'mistress'],
    'miss': ['ms', 'miss'],
    'professor': ['prof', 'professor'],
    'reverend': ['rev', 'reverend'],
    'captain': ['capt', 'captain', 'cpt'],
    'lieutenant': ['lt', 'lieut', 'lieutenant'],
    'sergeant': ['sgt', 'sergeant'],
}

DEFAULT_THRESHOLDS: Dict[str, float] = {
    'EXACT': 1.0,
    'FUZZY_HIGH': 0.9,
    'FUZZY_MEDIUM': 0.8,
    'FUZZY_LOW': 0.7,
    'MINIMUM': 0.6,
}

# Weights of the multi-algorithm blend, keyed by algorithm label. Sum is 1.0.
ALGORITHM_WEIGHTS: Dict[str, float] = {
    'levenshtein': 0.25,
    'jaro-winkler': 0.35,
    'token-set': 0.25,
    'partial': 0.15,
}

PHONE_MIN_LENGTH = 7
PHONE_STANDARD_LENGTH = 10
PHONE_COUNTRY_PREFIXES = ('1', '44')

MAX_PREFIX_LENGTH = 4
JARO_PREFIX_SCALE = 0.1
JARO_BOOST_THRESHOLD = 0.7

PERFECT_MATCH_THRESHOLD = 0.98
GOOD_ENOUGH_THRESHOLD = 0.99

KEY_SEPARATOR = '|'


class NormalizationRule(ABC):
    """Base class for a single text rewrite rule."""

    @abstractmethod
    def apply(self, text: str) -> str:
        """
        Rewrite the text.

        Args:
            text: Lowercased, trimmed text

        Returns:
            str: Rewritten text
        """
        pass


class AbbreviationRule(NormalizationRule):
    """Replace whole-word variants with their canonical form."""

    def __init__(
        self,
        canonical: str,
        variants: List[str],
        allow_trailing_period: bool = True
    ):
        self.canonical = canonical
        self.variants = list(variants)
        suffix = r'\.?' if allow_trailing_period else ''
        self.patterns = [
            re.compile(r'\b' + re.escape(variant) + suffix + r'\b', re.IGNORECASE)
            for variant in self.variants
        ]

    def apply(self, text: str) -> str:
        for pattern in self.patterns:
            text = pattern.sub(self.canonical, text)
        return text


class LeadingTitleRule(NormalizationRule):
    """Replace an honorific variant only when it opens the string."""

    def __init__(self, canonical: str, variants: List[str]):
        self.canonical = canonical
        self.variants = list(variants)
        self.patterns = [
            re.compile(r'^' + re.escape(variant) + r'\.?\s', re.IGNORECASE)
            for variant in self.variants
        ]

    def apply(self, text: str) -> str:
        for pattern in self.patterns:
            text = pattern.sub(f'{self.canonical} ', text)
        return text


@dataclass
class RuleTable:
    """Ordered group of rules built from one canonical->variants table."""

    name: str
    rules: List[NormalizationRule]

    def apply(self, text: str) -> str:
        for rule in self.rules:
            text = rule.apply(text)
        return text


def build_rule_table(
    name: str,
    table: Dict[str, List[str]],
    rule_class: Type[NormalizationRule] = AbbreviationRule,
    **kwargs
) -> RuleTable:
    """
    Compile a canonical->variants table into a rule table.

    Args:
        name: Name of the table
        table: Mapping of canonical form to its variant spellings
        rule_class: Rule type to build for every canonical entry
        **kwargs: Extra parameters for the rule class

    Returns:
        RuleTable: Compiled rule table
    """
    return RuleTable(
        name=name,
        rules=[
            rule_class(canonical, variants, **kwargs)
            for canonical, variants in table.items()
        ]
    )


ABBREVIATION_TABLES: List[RuleTable] = [
    build_rule_table('street', STREET_ABBREVIATIONS),
    build_rule_table('company', COMPANY_SUFFIXES),
    build_rule_table('country', COUNTRY_VARIATIONS, allow_trailing_period=False),
    build_rule_table('title', TITLE_ABBREVIATIONS, rule_class=LeadingTitleRule),
]
