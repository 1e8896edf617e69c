from __future__ import annotations
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from cleanlink.rules.table import RuleTable

_LABEL = r"[^.]+"
_LABELS = r"[^.]+(?:\.[^.]+)*"


def compile_domain_glob(glob: str) -> re.Pattern[str]:
    """Compile a host glob.

    A ``*`` label stands for one or more whole labels. A glob that does not
    start with ``*`` also matches subdomains of itself, so ``amazon.*``
    matches ``www.amazon.co.uk``.
    """
    labels = glob.lower().strip(".").split(".")
    body = r"\.".join(_LABELS if label == "*" else re.escape(label) for label in labels)
    if labels[0] != "*":
        body = rf"(?:{_LABEL}\.)*" + body
    return re.compile(rf"^{body}$")


@dataclass(frozen=True)
class Rule:
    match_string: str
    domain_glob: Optional[str] = None
    domain_re: Optional[re.Pattern[str]] = None

    @classmethod
    def parse(cls, raw: str) -> "Rule":
        name, sep, glob = raw.partition("@")
        # "pk_*" is the same prefix family as "pk_"
        name = name.rstrip("*")
        if not sep or not glob:
            return cls(match_string=name)
        return cls(match_string=name, domain_glob=glob, domain_re=compile_domain_glob(glob))

    def matches(self, param: str, host: str) -> bool:
        if not param.startswith(self.match_string):
            return False
        if self.domain_re is None:
            return True
        return self.domain_re.match(host) is not None


class RuleMatcher:
    """Decides whether a query parameter is tracking noise for a given host."""

    def __init__(self, table: RuleTable):
        self.table = table

    def should_remove(self, param: str, host: str) -> bool:
        host = host.lower()
        for rule in self.table.universal:
            if rule.matches(param, host):
                return True
        for key, prefixes in self.table.domain.items():
            if key in host and any(param.startswith(p) for p in prefixes):
                return True
        return False
