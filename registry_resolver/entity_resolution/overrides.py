"""
Override Table for known ambiguous brand names.

Operator-curated rules that map a brand token (name fragment or email domain)
straight to a registry identifier. Overrides take precedence over every other
signal and are never scored.

A rule may carry a qualifier (e.g. a regional subsidiary signalled by a name
token or a country email domain). Qualified rules are evaluated before
unqualified ones, so "Staples Canada" never falls through to "Staples".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from registry_resolver.entity_resolution.normalizer import name_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Qualifier:
    """Satisfied when any listed name token or domain suffix is present."""

    name_tokens: frozenset[str] = frozenset()
    domain_suffixes: frozenset[str] = frozenset()

    def matches(self, tokens: list[str], domain: str | None) -> bool:
        if any(token in tokens for token in self.name_tokens):
            return True
        return bool(domain) and any(domain.endswith(suffix) for suffix in self.domain_suffixes)


@dataclass(frozen=True)
class OverrideRule:
    """Maps brand tokens and domains to a fixed identifier/name pair."""

    identifier: str
    name: str
    keys: frozenset[str] = frozenset()  # Name fragments, already passed through name_key()
    domains: frozenset[str] = frozenset()  # Exact email domains
    qualifier: Qualifier | None = None

    @classmethod
    def build(
        cls,
        identifier: str,
        name: str,
        keys: list[str] | tuple[str, ...] = (),
        domains: list[str] | tuple[str, ...] = (),
        qualifier: Qualifier | None = None,
    ) -> OverrideRule:
        """Create a rule, normalizing its keys the same way queries are."""
        normalized_keys = frozenset(k for k in (name_key(key) for key in keys) if k)
        normalized_domains = frozenset(d.strip().lower() for d in domains if d and d.strip())
        return cls(identifier, name, normalized_keys, normalized_domains, qualifier)

    def matches(self, tokens: list[str], domain: str | None) -> bool:
        hit = (domain is not None and domain in self.domains) or any(
            _contains_run(tokens, key.split()) for key in self.keys
        )
        if not hit:
            return False
        if self.qualifier is not None:
            return self.qualifier.matches(tokens, domain)
        return True


def _contains_run(tokens: list[str], run: list[str]) -> bool:
    """True when run appears as a contiguous sub-sequence of tokens."""
    if not run or len(run) > len(tokens):
        return False
    width = len(run)
    return any(tokens[i : i + width] == run for i in range(len(tokens) - width + 1))


_CANADA = Qualifier(name_tokens=frozenset({"canada"}), domain_suffixes=frozenset({".ca"}))

DEFAULT_OVERRIDE_RULES: tuple[OverrideRule, ...] = (
    OverrideRule.build(
        "C136577",
        "Staples / Canada",
        keys=["staples"],
        domains=["staples.ca", "staples.com"],
        qualifier=_CANADA,
    ),
    OverrideRule.build(
        "C12808",
        "Adventures In Advertising",
        keys=["adventures in advertising", "aia", "kmoa", "mypromooffice"],
        domains=["mypromooffice.com"],
    ),
    OverrideRule.build("C1967", "Staples", keys=["staples"], domains=["staples.com"]),
    OverrideRule.build(
        "C7657",
        "Quality Logo Products",
        keys=["quality logo products", "qualitylogoproducts"],
        domains=["qualitylogoproducts.com"],
    ),
    OverrideRule.build(
        "C2259",
        "Halo Branded Solutions",
        keys=["halo", "halo branded solutions"],
        domains=["halo.com"],
    ),
    OverrideRule.build(
        "C5286",
        "iPromoteu.com",
        keys=["ipromoteu", "ipromoteu.com"],
        domains=["ipromoteu.com"],
    ),
    OverrideRule.build(
        "C2436",
        "Bensussen-Deutsch & Associates",
        keys=["bda", "bda inc", "bdainc"],
        domains=["bdainc.com"],
    ),
    OverrideRule.build(
        "C4211",
        "4 All Promos LLC",
        keys=["4allpromos", "4 all promos"],
        domains=["4allpromos.com"],
    ),
)


class OverrideTable:
    """Linear scan over override rules, qualified rules first."""

    def __init__(self, rules: list[OverrideRule] | tuple[OverrideRule, ...] = DEFAULT_OVERRIDE_RULES):
        qualified = [r for r in rules if r.qualifier is not None]
        unqualified = [r for r in rules if r.qualifier is None]
        self.rules: tuple[OverrideRule, ...] = tuple(qualified + unqualified)

    def __len__(self) -> int:
        return len(self.rules)

    def lookup(self, name: str | None, domain: str | None) -> OverrideRule | None:
        """
        Find the override for a normalized name and/or email domain.

        Args:
            name: Normalized query name (case and plural endings are ignored)
            domain: Normalized email domain

        Returns:
            The matching rule (identifier and name), or None
        """
        key = name_key(name)
        tokens = key.split() if key else []
        domain = domain.strip().lower() if domain else None
        if not tokens and not domain:
            return None

        for rule in self.rules:
            if rule.matches(tokens, domain):
                logger.debug(
                    f"Override hit: {rule.identifier} ({rule.name}) for name={name!r} domain={domain!r}"
                )
                return rule
        return None

    @classmethod
    def from_file(cls, path: Path | str) -> OverrideTable:
        """
        Load rules from a JSON file.

        Format: {"rules": [{"identifier": ..., "name": ..., "keys": [...],
        "domains": [...], "qualifier": {"name_tokens": [...], "domain_suffixes": [...]}}]}

        Raises:
            pydantic.ValidationError: If the file does not match the format
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        parsed = OverrideFile.model_validate(raw)
        rules = [item.to_rule() for item in parsed.rules]
        logger.info(f"Loaded {len(rules)} override rules from {path}")
        return cls(rules)


class QualifierModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name_tokens: list[str] = Field(default_factory=list)
    domain_suffixes: list[str] = Field(default_factory=list)


class OverrideRuleModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str = Field(min_length=1)
    name: str = Field(min_length=1)
    keys: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    qualifier: QualifierModel | None = None

    def to_rule(self) -> OverrideRule:
        qualifier = None
        if self.qualifier is not None:
            qualifier = Qualifier(
                name_tokens=frozenset(t.strip().lower() for t in self.qualifier.name_tokens if t.strip()),
                domain_suffixes=frozenset(
                    s.strip().lower() for s in self.qualifier.domain_suffixes if s.strip()
                ),
            )
        return OverrideRule.build(self.identifier, self.name, self.keys, self.domains, qualifier)


class OverrideFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rules: list[OverrideRuleModel]
