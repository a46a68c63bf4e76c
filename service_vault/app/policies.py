"""
Access policies installed into the backing store at bootstrap.
"""

import functools
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple


CAPABILITIES = frozenset({"create", "read", "update", "delete", "list", "sudo", "deny"})

SECRET_NAMESPACE = "transcendence"


@dataclass(frozen=True)
class PolicyRule:
    """Capabilities granted on one path pattern."""
    path: str
    capabilities: Tuple[str, ...]

    def __post_init__(self):
        unknown = set(self.capabilities) - CAPABILITIES
        if unknown:
            raise ValueError(f"Unknown capabilities for {self.path}: {sorted(unknown)}")

    def matches(self, path: str) -> bool:
        """Vault glob semantics: a trailing ``*`` is a prefix match, ``+`` matches one segment."""
        return _compile_glob(self.path).fullmatch(path) is not None

    def to_hcl(self) -> str:
        caps = ", ".join(f'"{cap}"' for cap in self.capabilities)
        return f'path "{self.path}" {{\n  capabilities = [{caps}]\n}}'


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> "re.Pattern[str]":
    prefix_match = pattern.endswith("*")
    body = pattern[:-1] if prefix_match else pattern
    regex = "/".join("[^/]+" if part == "+" else re.escape(part) for part in body.split("/"))
    return re.compile(regex + (".*" if prefix_match else ""))


_HCL_RULE = re.compile(
    r'path\s+"(?P<path>[^"]+)"\s*\{\s*capabilities\s*=\s*\[(?P<caps>[^\]]*)\]\s*\}',
    re.MULTILINE,
)


@dataclass(frozen=True)
class Policy:
    """A named, ordered set of path rules."""
    name: str
    rules: Tuple[PolicyRule, ...] = field(default_factory=tuple)

    def to_hcl(self) -> str:
        """Render the policy in Vault's HCL dialect."""
        return "\n\n".join(rule.to_hcl() for rule in self.rules) + "\n"

    @classmethod
    def from_hcl(cls, name: str, text: str) -> "Policy":
        """Parse the ``path "..." { capabilities = [...] }`` subset of HCL that ``to_hcl`` emits."""
        rules = []
        for match in _HCL_RULE.finditer(text):
            caps = tuple(re.findall(r'"([^"]+)"', match.group("caps")))
            rules.append(PolicyRule(match.group("path"), caps))
        if not rules and text.strip():
            raise ValueError(f"No path rules found in policy {name}")
        return cls(name, tuple(rules))

    def capabilities_for(self, path: str) -> Set[str]:
        granted: Set[str] = set()
        for rule in self.rules:
            if rule.matches(path):
                granted.update(rule.capabilities)
        return granted


def effective_capabilities(policies: Iterable[Policy]) -> Dict[str, Set[str]]:
    """Union of the rules of ``policies`` keyed by path pattern."""
    merged: Dict[str, Set[str]] = {}
    for policy in policies:
        for rule in policy.rules:
            merged.setdefault(rule.path, set()).update(rule.capabilities)
    return merged


def secret_path(name: str, mount: str = "secret") -> str:
    """Full KV v2 data path for a logical secret name."""
    return f"{mount}/data/{SECRET_NAMESPACE}/{name}"


def _read(*names: str) -> List[PolicyRule]:
    return [PolicyRule(secret_path(name), ("read",)) for name in names]


ALL_CRUD = ("create", "read", "update", "delete", "list")

DEFAULT_POLICIES: Tuple[Policy, ...] = (
    Policy("transcendence-admin", (
        PolicyRule(f"secret/data/{SECRET_NAMESPACE}/*", ALL_CRUD),
        PolicyRule(f"secret/metadata/{SECRET_NAMESPACE}/*", ("list", "delete")),
        PolicyRule("auth/token/*", ALL_CRUD),
    )),
    Policy("transcendence-service", tuple(
        _read("database", "jwt", "encryption", "oauth", "api")
        + [PolicyRule("auth/token/lookup-self", ("read",))]
    )),
    Policy("transcendence-auth", (
        PolicyRule(secret_path("database"), ("read",)),
        PolicyRule(secret_path("jwt"), ("read", "update")),
        PolicyRule(secret_path("oauth"), ("read",)),
    )),
    Policy("transcendence-db", tuple(_read("database"))),
)
