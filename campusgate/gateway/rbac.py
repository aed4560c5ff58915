"""
CampusGate - Route Authorization Table

Maps URL path prefixes to the roles allowed to reach them.
Rules are loaded from routes.yaml once at start-up and never change.

Matching:
- A prefix covers a path when the path equals it or continues it at a
  "/" boundary (/api/students covers /api/students/12, not /api/studentsX)
- The longest covering prefix wins, independent of declaration order
- The wildcard role ALL admits any authenticated role

Security:
- Deny-by-default: a path no rule covers is forbidden
- A rule with an empty role list is an explicit deny
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

import yaml


ALL = "ALL"


def normalize_prefix(prefix: str) -> str:
    prefix = "/" + prefix.strip().strip("/")
    return prefix


def path_has_prefix(path: str, prefix: str) -> bool:
    """True if prefix covers path on a segment boundary."""
    prefix = normalize_prefix(prefix)
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


class Decision(str, Enum):
    ALLOW = "allow"
    NO_RULE = "no_rule"
    ROLE_DENIED = "role_denied"


@dataclass(frozen=True)
class RouteRule:
    prefix: str
    roles: FrozenSet[str]

    @property
    def allows_all(self) -> bool:
        return ALL in self.roles

    def allows(self, role: Optional[str]) -> bool:
        if not role:
            return False
        return self.allows_all or role in self.roles


@dataclass(frozen=True)
class AuthorizationResult:
    decision: Decision
    rule: Optional[RouteRule] = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class AuthorizationTable:
    """
    Immutable longest-prefix matcher over (prefix -> roles).

    Usage:
        table = AuthorizationTable({"/a": ["X"], "/a/b": ["Y"]})
        table.match("/a/b/c").roles   # frozenset({"Y"})
    """

    def __init__(self, rules: Mapping[str, Iterable[str]]):
        normalized: Dict[str, RouteRule] = {}
        for prefix, roles in rules.items():
            key = normalize_prefix(prefix)
            if key in normalized:
                raise ValueError(f"Duplicate route prefix: {prefix}")
            normalized[key] = RouteRule(prefix=key, roles=frozenset(roles or ()))

        # Longest first; ties cannot happen because keys are unique
        self._rules: Tuple[RouteRule, ...] = tuple(
            sorted(normalized.values(), key=lambda r: len(r.prefix), reverse=True)
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "AuthorizationTable":
        """
        Load rules from YAML of the form:

            routes:
              /api/students: [COLLEGE_SUPER_ADMIN, TEACHER]
              /dashboard: [ALL]
        """
        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}
        return cls(config.get("routes") or {})

    @property
    def rules(self) -> Tuple[RouteRule, ...]:
        return self._rules

    def match(self, path: str) -> Optional[RouteRule]:
        for rule in self._rules:
            if path_has_prefix(path, rule.prefix):
                return rule
        return None

    def authorize(self, path: str, role: Optional[str]) -> AuthorizationResult:
        rule = self.match(path)
        if rule is None:
            return AuthorizationResult(Decision.NO_RULE)
        if not rule.allows(role):
            return AuthorizationResult(Decision.ROLE_DENIED, rule)
        return AuthorizationResult(Decision.ALLOW, rule)


@lru_cache(maxsize=None)
def load_authorization_table(path: Path) -> AuthorizationTable:
    return AuthorizationTable.from_yaml(path)
