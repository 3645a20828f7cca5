"""
Scrapbook Backend — Email Domain Policy
========================================

The "may this email sign in at all" predicate. Configured through
ALLOWED_EMAIL_DOMAINS; an empty list permits every domain.
"""

from typing import Iterable, Optional, Tuple

from scrapbook.config import settings


class EmailDomainPolicy:
    def __init__(self, domains: Iterable[str]):
        self.domains: Tuple[str, ...] = tuple(
            d.strip().lower().lstrip("@") for d in domains if d and d.strip()
        )

    def is_permitted(self, email: Optional[str]) -> bool:
        clean = (email or "").strip().lower()
        if not clean:
            return False
        if not self.domains:
            return True
        return any(clean.endswith("@" + domain) for domain in self.domains)

    def describe(self) -> str:
        if not self.domains:
            return "any"
        return ", ".join("@" + d for d in self.domains)


def default_policy() -> EmailDomainPolicy:
    return EmailDomainPolicy(settings.allowed_email_domains_list)
