"""
Guard Keyword Tables

Fixed lookup tables used by the rule-based guard: learning-requirement
phrases, technology → domain keywords, and the roles suggested when a task
must go elsewhere.
"""

import re
from typing import Dict, Iterable, List, Optional

from .models import ORCHESTRATOR_ROLE

# Phrases that ask a frozen component to acquire new knowledge
LEARNING_PATTERNS: List[re.Pattern[str]] = [
    re.compile(r"(?<!machine[ -])\blearn\w*"),
    re.compile(r"\bstud(?:y|ies|ying|ied)\b"),
    re.compile(r"\bresearch new\b"),
    re.compile(r"\bget familiar with\b"),
]

# Technologies implying a domain; a task naming one is outside a fingerprint
# whose domains do not mention the key
TECH_KEYWORDS: Dict[str, List[str]] = {
    "backend": ["postgresql", "mysql", "mongodb", "redis", "docker", "kubernetes"],
    "frontend": ["vue", "angular", "svelte"],
    "mobile": ["ios", "android", "flutter", "react-native"],
    "ai": ["pytorch", "tensorflow", "machine learning", "neural network"],
    "devops": ["aws", "azure", "gcp", "terraform", "ansible"],
}

TECH_ROLES: Dict[str, str] = {
    "postgresql": "database-expert",
    "mysql": "database-expert",
    "mongodb": "database-expert",
    "redis": "database-expert",
    "docker": "devops-expert",
    "kubernetes": "devops-expert",
    "vue": "vue-frontend-expert",
    "angular": "angular-frontend-expert",
    "svelte": "frontend-expert",
    "ios": "mobile-expert",
    "android": "mobile-expert",
    "flutter": "mobile-expert",
    "react-native": "mobile-expert",
    "pytorch": "ai-expert",
    "tensorflow": "ai-expert",
    "machine learning": "ai-expert",
    "neural network": "ai-expert",
    "aws": "devops-expert",
    "azure": "devops-expert",
    "gcp": "devops-expert",
    "terraform": "devops-expert",
    "ansible": "devops-expert",
}

# Ordered: first keyword hit in the required domains wins
DOMAIN_ROLES: List[tuple[tuple[str, ...], str]] = [
    (("backend", "database", "db", "api"), "backend-expert"),
    (("ai", "ml", "llm"), "ai-expert"),
    (("devops", "infrastructure", "infra"), "devops-expert"),
    (("mobile",), "mobile-expert"),
    (("frontend", "ui"), "frontend-expert"),
]

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def domain_tokens(domain: str) -> set[str]:
    """Split a domain label into lowercase word tokens."""
    return {t for t in _TOKEN_SPLIT.split(domain.lower()) if t}


def has_learning_requirement(description: str) -> bool:
    desc = description.lower()
    return any(pattern.search(desc) for pattern in LEARNING_PATTERNS)


def find_incompatible_technologies(
    description: str, expert_domains: Iterable[str]
) -> List[str]:
    """Technologies named in ``description`` whose domain the node lacks."""
    desc = description.lower()
    domains = [d.lower() for d in expert_domains]
    incompatible: List[str] = []
    for domain, techs in TECH_KEYWORDS.items():
        if any(domain in node_domain for node_domain in domains):
            continue
        for tech in techs:
            if re.search(rf"(?<![\w-]){re.escape(tech)}(?![\w-])", desc):
                incompatible.append(tech)
    return incompatible


def suggest_role_for_domains(required_domains: Iterable[str]) -> str:
    tokens: set[str] = set()
    for domain in required_domains:
        tokens |= domain_tokens(domain)
    for keywords, role in DOMAIN_ROLES:
        if tokens.intersection(keywords):
            return role
    return ORCHESTRATOR_ROLE


def suggest_role_for_technology(tech: Optional[str]) -> str:
    if tech is None:
        return ORCHESTRATOR_ROLE
    return TECH_ROLES.get(tech, ORCHESTRATOR_ROLE)
