"""
Issue Signatures

Repeat-issue matching for free-text ticket descriptions.

Rule: an issue's keywords are its lower-cased alphanumeric tokens of at
least 3 characters, minus common stop words. Two descriptions describe the
same issue when the Jaccard similarity of their keyword sets is >= 0.5.
Descriptions without keywords never match anything.
"""

import re
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from app.models.records import ReportTicket

SIMILARITY_THRESHOLD = 0.5
ISSUE_LABEL_LENGTH = 50
UNKNOWN_ISSUE = "Unknown"

_TOKEN_RE = re.compile(r"[a-z0-9]+")

STOP_WORDS = frozenset({
    "the", "and", "for", "not", "but", "was", "are", "has", "had", "have",
    "with", "from", "this", "that", "then", "than", "when", "after", "again",
    "into", "out", "off", "its", "all", "any", "can", "cannot",
    "does", "doesn", "did", "didn", "won", "isn", "wasn", "very", "there",
    "their", "they", "our", "your", "you", "please", "customer", "machine",
    "reports", "reported", "issue", "problem", "still",
})


def issue_keywords(text: Optional[str]) -> FrozenSet[str]:
    """Keyword set used to compare issue descriptions"""
    if not text:
        return frozenset()
    tokens = _TOKEN_RE.findall(text.lower())
    return frozenset(t for t in tokens if len(t) >= 3 and t not in STOP_WORDS)


def similarity(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def is_same_issue(a: Optional[str], b: Optional[str]) -> bool:
    return similarity(issue_keywords(a), issue_keywords(b)) >= SIMILARITY_THRESHOLD


def issue_label(text: Optional[str]) -> str:
    """Display label for an issue: whitespace-collapsed, first 50 characters"""
    if not text:
        return UNKNOWN_ISSUE
    collapsed = " ".join(text.split())
    return collapsed[:ISSUE_LABEL_LENGTH] or UNKNOWN_ISSUE


def _ticket_sort_key(ticket: ReportTicket) -> Tuple[str, str]:
    return (ticket.created_at or "", ticket.id)


def group_similar_issues(tickets: Iterable[ReportTicket]) -> List[List[ReportTicket]]:
    """
    Cluster tickets (all against one machine) by issue similarity.

    Tickets are walked oldest first; each joins the first group whose
    founding ticket it matches, otherwise it founds a new group.
    Tickets without keywords always form their own group.
    """
    groups: List[Tuple[FrozenSet[str], List[ReportTicket]]] = []
    for ticket in sorted(tickets, key=_ticket_sort_key):
        keywords = issue_keywords(ticket.issue_description)
        for founder_keywords, members in groups:
            if similarity(keywords, founder_keywords) >= SIMILARITY_THRESHOLD:
                members.append(ticket)
                break
        else:
            groups.append((keywords, [ticket]))
    return [members for _, members in groups]


def count_repeats(tickets: Sequence[ReportTicket]) -> int:
    """Tickets beyond the first in each similar-issue group"""
    return sum(len(group) - 1 for group in group_similar_issues(tickets) if len(group) > 1)
