"""
Department guidance lookup.

Department labels arrive in many spellings ("Human Resources", "human-resources",
"HR", "people_ops"). Labels are normalized (case and separators) and resolved
through an alias table to a canonical department before the guidance text is
looked up.
"""

import re
from typing import Dict, Mapping, Optional

_SEPARATORS = re.compile(r"[\s_\-/.]+")

DEFAULT_DEPARTMENT_PROMPTS: Dict[str, str] = {
    "sales": (
        "Focus on pipeline health, win rates, deal velocity and revenue per account.\n"
        "Highlight at-risk deals and the next best action for each."
    ),
    "marketing": (
        "Focus on campaign performance, acquisition cost, conversion funnels and channel mix.\n"
        "Tie recommendations to measurable lead and revenue outcomes."
    ),
    "finance": (
        "Focus on cash flow, margins, budget variance and receivables ageing.\n"
        "Be precise with figures and state assumptions behind any projection."
    ),
    "operations": (
        "Focus on throughput, cycle times, bottlenecks and fulfilment reliability.\n"
        "Prefer process changes that can be rolled out incrementally."
    ),
    "hr": (
        "Focus on headcount, hiring funnel, retention and workload balance.\n"
        "Never expose individual personal data in summaries."
    ),
    "it": (
        "Focus on system availability, incident trends, ticket backlog and security posture.\n"
        "Flag single points of failure."
    ),
    "procurement": (
        "Focus on supplier performance, lead times, price variance and contract coverage.\n"
        "Surface consolidation and renegotiation opportunities."
    ),
    "customer support": (
        "Focus on ticket volume, response and resolution times, and satisfaction scores.\n"
        "Group recurring issues by root cause."
    ),
    "legal": (
        "Focus on contract obligations, renewal dates and compliance exposure.\n"
        "Do not present analysis as legal advice."
    ),
}

DEFAULT_DEPARTMENT_ALIASES: Dict[str, str] = {
    "human resources": "hr",
    "people": "hr",
    "people ops": "hr",
    "people operations": "hr",
    "talent": "hr",
    "information technology": "it",
    "tech": "it",
    "engineering": "it",
    "ops": "operations",
    "supply chain": "operations",
    "logistics": "operations",
    "purchasing": "procurement",
    "sourcing": "procurement",
    "support": "customer support",
    "customer service": "customer support",
    "cs": "customer support",
    "accounting": "finance",
    "accounts": "finance",
    "growth": "marketing",
    "business development": "sales",
    "bd": "sales",
    "compliance": "legal",
}


def normalize_department(label: str) -> str:
    """Lower-case a department label and collapse separators to single spaces."""
    return _SEPARATORS.sub(" ", label.strip().lower()).strip()


def _compact(label: str) -> str:
    return label.replace(" ", "")


class DepartmentPromptLookup:
    """Resolves department labels to guidance text."""

    def __init__(
        self,
        prompts: Optional[Mapping[str, str]] = None,
        aliases: Optional[Mapping[str, str]] = None,
    ):
        self.prompts = {
            normalize_department(name): text
            for name, text in (DEFAULT_DEPARTMENT_PROMPTS if prompts is None else prompts).items()
        }
        self.aliases = {
            normalize_department(alias): normalize_department(canonical)
            for alias, canonical in (DEFAULT_DEPARTMENT_ALIASES if aliases is None else aliases).items()
        }
        # "customerservice" and "customer service" resolve the same way
        self._compact_names = {_compact(name): name for name in self.prompts}
        self._compact_names.update({_compact(alias): canonical for alias, canonical in self.aliases.items()})

    def resolve(self, label: Optional[str]) -> Optional[str]:
        """Resolve a label to its canonical department name, or None if unknown."""
        if not label:
            return None
        name = normalize_department(label)
        name = self.aliases.get(name, name)
        if name in self.prompts:
            return name
        return self._compact_names.get(_compact(name))

    def lookup(self, label: Optional[str]) -> Optional[str]:
        """Return the guidance text for a department label, or None."""
        canonical = self.resolve(label)
        if canonical is None:
            return None
        return self.prompts.get(canonical)
