"""
Canonical text projections used as embedding input.

Registry entries and queries are projected the same way (lowercased, empty
parts omitted, parts joined with " | ") so their vectors are comparable.
"""

from registry_resolver.domain.models import EntityKind, NormalizedQuery, RegistryEntry

SEPARATOR = " | "


def _join(parts: list[str | None]) -> str:
    cleaned = [" ".join(p.split()).lower() for p in parts if p and p.strip()]
    return SEPARATOR.join(cleaned)


def _digits(value: str | None) -> str | None:
    if not value:
        return None
    digits = "".join(ch for ch in value if ch.isdigit())
    return digits or None


def entry_embedding_text(entry: RegistryEntry) -> str:
    """
    Project a registry entry to embedding text.

    Customers: name | aliases | email domain | city state | phone digits
    Contacts: name | job title | company | email | email domain | phone digits
    """
    phone = entry.phone_digits or _digits(entry.phone)
    if entry.kind is EntityKind.CONTACT:
        return _join(
            [entry.name, entry.job_title, entry.company, entry.email, entry.email_domain, phone]
        )

    location = " ".join(
        v for v in (entry.address.get("city"), entry.address.get("state")) if v and v.strip()
    )
    return _join(
        [
            entry.name,
            " ".join(sorted(entry.aliases)) if entry.aliases else None,
            entry.email_domain,
            location,
            phone,
        ]
    )


def query_embedding_text(query: NormalizedQuery) -> str:
    """
    Project a normalized query to embedding text.

    Customers: name | email | domain | city state | phone digits
    Contacts: name | job title | company | email | domain | phone digits
    """
    email = query.email or query.sender_email
    if query.kind is EntityKind.CONTACT:
        return _join(
            [query.name, query.job_title, query.company, email, query.domain, query.phone_digits]
        )

    location = " ".join(v for v in (query.city, query.state) if v)
    return _join([query.name, email, query.domain, location, query.phone_digits])
