"""Protection rules — which paths a sync must never overwrite or delete.

Rules are plain strings stored in ``.forksync.json``. Each one compiles to
one of four matcher variants:

- directory prefix: ``services/custom/`` protects everything below it
- exact path: ``apps/web/src/config.ts`` protects that one file
- bare filename: ``.env`` (or a pattern such as ``.env.*``) protects any
  file with that name anywhere in the tree
- segment prefix: any path segment starting with ``custom-``; this one is
  implicit and cannot be switched off
"""

from __future__ import annotations

import fnmatch
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from forksync.models.sync import SyncConfig

logger = logging.getLogger(__name__)

CUSTOM_SEGMENT_PREFIX = "custom-"

DEFAULTS_RESOURCE = Path(__file__).resolve().parent.parent / "data" / "protected-areas.json"

FALLBACK_PROTECTED_AREAS = [
    "apps/pika-chat/src/lib/client/features/chat/markdown-message-renderer/custom-markdown-tag-components/",
    "services/custom/",
    "apps/custom/",
    ".env",
    ".env.local",
    ".env.*",
    "pika.config.ts",
    ".forksync.json",
]


class MatcherKind(Enum):
    SEGMENT_PREFIX = "segment_prefix"
    DIRECTORY_PREFIX = "directory_prefix"
    EXACT_PATH = "exact_path"
    BARE_FILENAME = "bare_filename"


@dataclass(frozen=True)
class RuleMatcher:
    """A compiled protection rule."""

    rule: str
    kind: MatcherKind

    def matches(self, path: str) -> bool:
        if self.kind == MatcherKind.SEGMENT_PREFIX:
            return any(part.startswith(self.rule) for part in path.split("/"))
        if self.kind == MatcherKind.DIRECTORY_PREFIX:
            return path.startswith(self.rule) or path == self.rule.rstrip("/")
        if self.kind == MatcherKind.EXACT_PATH:
            return path == self.rule
        return fnmatch.fnmatchcase(path.rsplit("/", 1)[-1], self.rule)


CUSTOM_SEGMENT = RuleMatcher(CUSTOM_SEGMENT_PREFIX, MatcherKind.SEGMENT_PREFIX)


def compile_rule(rule: str) -> RuleMatcher:
    """Classify a rule string into its matcher variant."""
    if rule.endswith("/"):
        return RuleMatcher(rule, MatcherKind.DIRECTORY_PREFIX)
    if "/" in rule:
        return RuleMatcher(rule, MatcherKind.EXACT_PATH)
    return RuleMatcher(rule, MatcherKind.BARE_FILENAME)


class ProtectionSet:
    """An ordered, deduplicated set of compiled rules plus the implicit
    ``custom-`` segment rule."""

    def __init__(self, rules: list[str] | tuple[str, ...] = ()):
        self.rules: list[str] = _dedupe(rules)
        self._matchers = [compile_rule(r) for r in self.rules]

    def __iter__(self):
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, rule: object) -> bool:
        return rule in self.rules

    def match(self, path: str) -> RuleMatcher | None:
        """Return the first matcher that protects *path*, or None."""
        path = normalize(path)
        if CUSTOM_SEGMENT.matches(path):
            return CUSTOM_SEGMENT
        for matcher in self._matchers:
            if matcher.matches(path):
                return matcher
        return None

    def is_protected(self, path: str) -> bool:
        matcher = self.match(path)
        if matcher is not None:
            logger.debug("protected: %s (rule %r, %s)", path, matcher.rule, matcher.kind.value)
            return True
        return False


def normalize(path: str) -> str:
    """POSIX separators, no leading ``./``."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def is_protected(path: str, rules: list[str] | ProtectionSet) -> bool:
    """Return True if *path* (relative, POSIX) is protected by *rules*."""
    if not isinstance(rules, ProtectionSet):
        rules = ProtectionSet(rules)
    return rules.is_protected(path)


def effective_protection_set(config: SyncConfig) -> ProtectionSet:
    """``(protected ∪ user_protected) \\ user_unprotected``, order kept."""
    removed = set(config.user_unprotected_areas)
    combined = [
        rule
        for rule in list(config.protected_areas) + list(config.user_protected_areas)
        if rule not in removed
    ]
    return ProtectionSet(combined)


def load_default_protected_areas(resource: str | Path | None = None) -> list[str]:
    """Read the bundled defaults, falling back to the hard-coded list."""
    path = Path(resource) if resource else DEFAULTS_RESOURCE
    try:
        rules = read_protection_resource(path)
    except (OSError, ValueError) as e:
        logger.debug("could not read protection defaults from %s: %s", path, e)
        rules = None
    if rules is None:
        return list(FALLBACK_PROTECTED_AREAS)
    return rules


def read_protection_resource(path: Path) -> list[str] | None:
    """Parse a ``{"defaultProtectedAreas": [...]}`` file.

    Returns None if the file does not exist. Raises ValueError if it exists
    but is not valid.
    """
    if not path.is_file():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    rules = data.get("defaultProtectedAreas") if isinstance(data, dict) else None
    if not isinstance(rules, list) or not all(isinstance(r, str) for r in rules):
        raise ValueError(f"{path}: 'defaultProtectedAreas' must be a list of strings")
    return rules


def _dedupe(rules) -> list[str]:
    seen: set[str] = set()
    result = []
    for rule in rules:
        if rule and rule not in seen:
            seen.add(rule)
            result.append(rule)
    return result
