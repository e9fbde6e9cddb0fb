from __future__ import annotations

import dataclasses
import fnmatch
from typing import Mapping


def normalize_email(email: str) -> str:
    return email.strip().strip("<>").strip().lower()


def normalize_name(name: str) -> str:
    return name.strip().casefold()


def author_key(name: str, email: str) -> str:
    """
    Canonical author identity: the normalized email, or `name:<casefolded name>`
    for commits that carry no email. Returns "" when both are empty.
    """
    e = normalize_email(email or "")
    if e:
        return e
    n = normalize_name(name or "")
    if n:
        return f"name:{n}"
    return ""


@dataclasses.dataclass(frozen=True)
class IdentityResolver:
    """Folds alias emails/names onto one canonical email (like a tiny .mailmap)."""

    email_aliases: Mapping[str, str] = dataclasses.field(default_factory=dict)
    name_aliases: Mapping[str, str] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_config(cls, aliases: Mapping[str, list[str]] | None) -> "IdentityResolver":
        emails: dict[str, str] = {}
        names: dict[str, str] = {}
        for canonical, alias_list in (aliases or {}).items():
            canon = normalize_email(str(canonical))
            if not canon:
                continue
            for alias in alias_list or []:
                a = str(alias).strip()
                if not a:
                    continue
                if "@" in a:
                    emails[normalize_email(a)] = canon
                else:
                    names[normalize_name(a)] = canon
        return cls(email_aliases=emails, name_aliases=names)

    def resolve(self, name: str, email: str) -> str:
        e = normalize_email(email or "")
        if e and e in self.email_aliases:
            return self.email_aliases[e]
        n = normalize_name(name or "")
        if n and n in self.name_aliases:
            return self.name_aliases[n]
        return author_key(name, email)


@dataclasses.dataclass(frozen=True)
class AuthorFilter:
    emails: frozenset[str]
    email_globs: tuple[str, ...] = ()

    @classmethod
    def for_emails(cls, values: list[str]) -> "AuthorFilter":
        plain: set[str] = set()
        globs: list[str] = []
        for v in values:
            e = normalize_email(v)
            if not e:
                continue
            if any(ch in e for ch in "*?["):
                globs.append(e)
            else:
                plain.add(e)
        return cls(frozenset(plain), tuple(globs))

    def matches(self, author_email: str) -> bool:
        email = normalize_email(author_email)
        if not email:
            return False
        if email in self.emails:
            return True
        for pat in self.email_globs:
            if fnmatch.fnmatch(email, pat):
                return True
        return False
