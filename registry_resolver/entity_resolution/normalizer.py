"""
Query Normalization Module.

Canonicalizes raw query fields (names, emails, phones) into comparable forms.
Every function here is pure: the same input always gives the same output.
"""

from __future__ import annotations

import logging
import re

from registry_resolver.constants import FREEMAIL_DOMAINS
from registry_resolver.domain.models import ContactRole, EntityKind, NormalizedQuery, Query

logger = logging.getLogger(__name__)

LEGAL_SUFFIXES = frozenset({"inc", "llc", "ltd", "co", "corp", "company", "corporation"})

GENERIC_INDUSTRY_WORDS = frozenset(
    {
        "promotional",
        "promo",
        "products",
        "marketing",
        "printing",
        "group",
        "agency",
        "solutions",
        "services",
    }
)

# Words peeled off the end of run-together tokens when building expansions
# ("allpromos" -> "all promos"). Longest first so "promos" wins over "promo".
_SEGMENT_WORDS = sorted(
    GENERIC_INDUSTRY_WORDS
    | {"promos", "brands", "apparel", "gifts", "logos", "logo", "prints", "print", "wear", "gear"},
    key=len,
    reverse=True,
)

_DIGIT_WORDS = {
    "0": "zero",
    "1": "one",
    "2": "two",
    "3": "three",
    "4": "four",
    "5": "five",
    "6": "six",
    "7": "seven",
    "8": "eight",
    "9": "nine",
}

_WHITESPACE = re.compile(r"\s+")
_ROOT_SEPARATORS = re.compile(r"[:\-–/()|]")
_STRIP_WORDS = re.compile(
    r"\b(" + "|".join(sorted(LEGAL_SUFFIXES | GENERIC_INDUSTRY_WORDS)) + r")\b\.?"
)
_TOKEN = re.compile(r"[a-z0-9]+")
_DIGIT_LETTER = re.compile(r"(\d)([a-z])")
_LETTER_DIGIT = re.compile(r"([a-z])(\d)")
_ANGLE_ADDRESS = re.compile(r"<\s*([^<>\s]+@[^<>\s]+)\s*>")
_DISPLAY_NAME = re.compile(r"^\s*\"?([^\"<]+?)\"?\s*<")
_BARE_ADDRESS = re.compile(r"[^\s<>\"']+@[^\s<>\"']+")


def normalize_text(text: str | None) -> str | None:
    """Lowercase, trim, collapse internal whitespace, expand '&' to 'and'."""
    if text is None:
        return None
    result = text.lower().replace("&", " and ")
    result = _WHITESPACE.sub(" ", result).strip()
    return result or None


def root_form(name: str | None) -> str | None:
    """
    Strip legal-entity suffixes and generic industry words from a name.

    The part before the first separator (':', '-', '/', '(' ...) is kept,
    so "Acme Promotional Products - East" becomes "acme".
    """
    normalized = normalize_text(name)
    if not normalized:
        return None
    stripped = _STRIP_WORDS.sub(" ", normalized)
    first_part = _ROOT_SEPARATORS.split(stripped)[0]
    first_part = _WHITESPACE.sub(" ", first_part).strip(" ,.;")
    return first_part or None


def singularize(token: str) -> str:
    """Drop a trivial plural 's' ("specialists" -> "specialist", "glass" unchanged)."""
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def name_key(name: str | None) -> str | None:
    """
    Key used for exact name routing and override matching.

    Alphanumeric tokens of the normalized name with trivial plural endings
    removed, so case, punctuation and pluralization never change routing.
    """
    normalized = normalize_text(name)
    if not normalized:
        return None
    tokens = [singularize(t) for t in _TOKEN.findall(normalized)]
    return " ".join(tokens) or None


def parse_address(raw: str | None) -> tuple[str | None, str | None]:
    """
    Split a "Display Name <address>" string into (name, address).

    A bare address is returned with no name. Both parts are normalized.
    """
    if not raw or not raw.strip():
        return None, None
    text = raw.strip()
    angle = _ANGLE_ADDRESS.search(text)
    if angle:
        display = _DISPLAY_NAME.match(text)
        return (
            normalize_text(display.group(1)) if display else None,
            normalize_email(angle.group(1)),
        )
    bare = _BARE_ADDRESS.search(text)
    return None, normalize_email(bare.group(0)) if bare else None


def normalize_email(email: str | None) -> str | None:
    """Lowercase and trim an email address; None when it has no '@'."""
    if not email:
        return None
    result = email.strip().strip("<>").strip().lower()
    if "@" not in result or result.startswith("@") or result.endswith("@"):
        return None
    return result


def extract_domain(email: str | None) -> str | None:
    """Domain of an already normalized email address."""
    if not email or "@" not in email:
        return None
    return email.split("@")[1] or None


def normalize_phone(phone: str | None) -> str | None:
    """Strip every non-digit character."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    return digits or None


def _segment(token: str) -> str:
    """Peel known trailing words off a run-together token."""
    for word in _SEGMENT_WORDS:
        if token.endswith(word) and len(token) > len(word) + 1:
            return f"{_segment(token[: -len(word)])} {word}"
    return token


def query_expansions(name: str | None, has_email: bool) -> frozenset[str]:
    """
    Produce lexical-only variants of a normalized name.

    - digit/letter runs split apart, with run-together words peeled off
      ("4allpromos" -> "4 all promos")
    - small digits spelled out as words ("4 all promos" -> "four all promos")
    - a guessed domain (alphanumeric name + ".com") when no email is known
    """
    if not name:
        return frozenset()

    variants: set[str] = set()

    split = _LETTER_DIGIT.sub(r"\1 \2", _DIGIT_LETTER.sub(r"\1 \2", name))
    split = " ".join(_segment(token) for token in split.split())
    variants.add(split)

    for base in (name, split):
        spelled = " ".join(_DIGIT_WORDS.get(token, token) for token in base.split())
        variants.add(spelled)

    if not has_email and "@" not in name and ".com" not in name:
        alphanumeric = re.sub(r"[^a-z0-9]", "", name)
        if alphanumeric:
            variants.add(f"{alphanumeric}.com")

    variants.discard(name)
    return frozenset(v for v in variants if v)


def infer_role(job_title: str | None) -> ContactRole:
    """Infer a contact role from a free-form job title."""
    if not job_title:
        return ContactRole.UNKNOWN

    title = job_title.lower()
    if any(k in title for k in ("purchas", "procurement", "buyer")):
        return ContactRole.PURCHASING
    if any(k in title for k in ("payable", "accounting", "accountant", "ap ")):
        return ContactRole.ACCOUNTS_PAYABLE
    if any(k in title for k in ("sales", "account manager", "account executive", "rep")):
        return ContactRole.SALES
    if any(k in title for k in ("owner", "president", "ceo", "founder")):
        return ContactRole.OWNER
    if any(k in title for k in ("csr", "customer service", "support")):
        return ContactRole.CSR
    return ContactRole.UNKNOWN


class Normalizer:
    """
    Turns a raw Query into a NormalizedQuery.

    Addresses on the operating domain (the system's own mailboxes) are never
    treated as the external entity's address: they are replaced by the
    forwarded original sender when one is known, otherwise dropped.
    """

    def __init__(self, operating_domain: str | None = None):
        self.operating_domain = (
            operating_domain.strip().lower().lstrip("@") if operating_domain else None
        )

    def _is_operating(self, email: str | None) -> bool:
        if not email or not self.operating_domain:
            return False
        domain = extract_domain(email)
        return domain == self.operating_domain or bool(
            domain and domain.endswith("." + self.operating_domain)
        )

    def _screen(self, email: str | None, forwarded: str | None, label: str) -> str | None:
        if not self._is_operating(email):
            return email
        if forwarded:
            logger.debug(f"Replacing operating-domain {label} email with forwarded sender")
            return forwarded
        logger.debug(f"Discarding operating-domain {label} email")
        return None

    def normalize(self, query: Query) -> NormalizedQuery:
        """Normalize every field of a query."""
        forwarded_name, forwarded_email = parse_address(query.forwarded_sender)
        if self._is_operating(forwarded_email):
            forwarded_name, forwarded_email = None, None

        email = self._screen(normalize_email(query.email), forwarded_email, "primary")
        sender_email = self._screen(normalize_email(query.sender_email), forwarded_email, "sender")
        sender_name = normalize_text(query.sender_name)
        if sender_email is not None and sender_email == forwarded_email and forwarded_name:
            sender_name = forwarded_name

        name = normalize_text(query.name)
        if query.kind is EntityKind.CONTACT:
            # A contact query falls back on the sender's own details
            name = name or sender_name
            email = email or sender_email

        domain = extract_domain(email) or extract_domain(sender_email)

        external_ids = tuple(
            sorted(
                (key.strip().lower(), value.strip())
                for key, value in query.external_ids.items()
                if key and key.strip() and value and value.strip()
            )
        )
        identifier = query.identifier.strip() if query.identifier and query.identifier.strip() else None

        return NormalizedQuery(
            kind=query.kind,
            identifier=identifier,
            external_ids=external_ids,
            name=name,
            root_name=root_form(name),
            name_key=name_key(name),
            email=email,
            sender_email=sender_email,
            domain=domain,
            phone_digits=normalize_phone(query.phone),
            job_title=normalize_text(query.job_title),
            company=normalize_text(query.company),
            city=normalize_text(query.city),
            state=normalize_text(query.state),
            expansions=query_expansions(name, has_email=bool(email or sender_email)),
        )


def normalize_query(query: Query, operating_domain: str | None = None) -> NormalizedQuery:
    """Convenience wrapper around Normalizer.normalize()."""
    return Normalizer(operating_domain=operating_domain).normalize(query)


def is_organization_domain(domain: str | None, operating_domain: str | None = None) -> bool:
    """
    True when an email domain can plausibly identify a single organization.

    Public mailbox providers and the operating domain cannot.
    """
    if not domain:
        return False
    if domain in FREEMAIL_DOMAINS:
        return False
    if operating_domain and (domain == operating_domain or domain.endswith("." + operating_domain)):
        return False
    return True
