"""Keyword-based intent detection for free-text document requests.

Detects document type, jurisdiction and business type from a user prompt
using ordered rule tables. The first matching rule wins; each table has a
fixed fallback. Classification is advisory: a wrong guess only degrades
the generated document, it never changes the generation contract.
"""

import re
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_DOCUMENT_TYPE = "nda"
DEFAULT_COUNTRY = "Netherlands"
DEFAULT_BUSINESS_TYPE = "startup"

DOCUMENT_TYPE_LABELS: dict[str, str] = {
    "privacy": "GDPR-Compliant Privacy Policy",
    "nda": "Non-Disclosure Agreement (NDA)",
    "partnership": "Partnership Agreement",
    "employment": "Employment Agreement",
    "service": "Service Contract",
    "freelance": "Freelance Contract",
    "consulting": "Consulting Agreement",
    "terms": "Terms of Service",
    "licensing": "Licensing Agreement",
    "vendor": "Vendor Agreement",
}

# (result, keywords) in priority order. Keywords of three letters or fewer
# are matched as whole words so "us" does not fire on "business".
DOCUMENT_TYPE_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("privacy", ("privacy policy", "privacy", "gdpr", "data protection")),
    ("nda", ("nda", "non-disclosure", "confidentiality")),
    ("partnership", ("partnership", "partner")),
    ("employment", ("employment", "job", "employee")),
    ("service", ("service agreement", "service contract", "services")),
    ("freelance", ("freelance", "freelancer")),
    ("consulting", ("consulting", "consultant")),
    ("terms", ("terms of service", "tos", "terms of use", "saas", "software as a service")),
    ("licensing", ("license", "licensing")),
    ("vendor", ("vendor", "supplier")),
]

COUNTRY_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("Netherlands", ("netherlands", "dutch", "nl", "amsterdam")),
    ("US", ("united states", "usa", "us", "america", "california", "new york")),
    ("UK", ("united kingdom", "uk", "britain", "england", "london")),
    ("DE", ("germany", "german", "de", "berlin")),
    ("FR", ("france", "french", "fr", "paris")),
    ("CA", ("canada", "canadian", "ca", "toronto")),
    ("AU", ("australia", "australian", "au", "sydney")),
    ("SG", ("singapore", "sg")),
    ("Netherlands", ("gdpr", "european", "eu")),
]

BUSINESS_TYPE_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("startup", ("startup", "start-up")),
    ("corporation", ("corporation", "corp")),
    ("llc", ("llc",)),
    ("freelancer", ("freelance", "freelancer", "individual")),
    ("nonprofit", ("nonprofit", "non-profit")),
    ("saas", ("saas", "software")),
    ("ecommerce", ("ecommerce", "e-commerce", "online store")),
]


@dataclass(frozen=True)
class DetectedIntent:
    document_type: str
    country: str
    business_type: str

    @property
    def document_label(self) -> str:
        return document_type_label(self.document_type)


@lru_cache(maxsize=256)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    if len(keyword) <= 3:
        return re.compile(rf"\b{re.escape(keyword)}\b")
    return re.compile(re.escape(keyword))


def _first_match(text: str, rules: list[tuple[str, tuple[str, ...]]], default: str) -> str:
    lowered = text.lower()
    for result, keywords in rules:
        if any(_keyword_pattern(k).search(lowered) for k in keywords):
            return result
    return default


def detect_document_type(message: str) -> str:
    return _first_match(message, DOCUMENT_TYPE_RULES, DEFAULT_DOCUMENT_TYPE)


def detect_country(message: str) -> str:
    return _first_match(message, COUNTRY_RULES, DEFAULT_COUNTRY)


def detect_business_type(message: str) -> str:
    return _first_match(message, BUSINESS_TYPE_RULES, DEFAULT_BUSINESS_TYPE)


def detect_intent(message: str) -> DetectedIntent:
    """Run all three classifiers over a prompt."""
    return DetectedIntent(
        document_type=detect_document_type(message),
        country=detect_country(message),
        business_type=detect_business_type(message),
    )


def normalize_document_type(value: str | None) -> str:
    """Return a recognized document type, falling back to the default."""
    if value:
        cleaned = value.strip().lower()
        if cleaned in DOCUMENT_TYPE_LABELS:
            return cleaned
    return DEFAULT_DOCUMENT_TYPE


def document_type_label(document_type: str) -> str:
    return DOCUMENT_TYPE_LABELS.get(document_type, document_type.upper())
