"""
Status Normalizer - free-text ticket statuses onto the canonical vocabulary.

Service ticket statuses arrive as free text: French labels with or without
diacritics ("Terminée", "annulee"), legacy snake_case values ("en_cours",
"en_attente") and whatever else an operator typed. The classification is a
declarative table evaluated top to bottom; the first canonical status with a
matching keyword wins, and a negated keyword ("non résolu") does not match.
Strings matching nothing are counted as in progress so that no ticket
silently disappears from the totals.
"""

from typing import Iterable, Optional

import structlog

from opsmetrics.models.enums import CanonicalStatus
from opsmetrics.models.snapshot import TicketStatusBreakdown

logger = structlog.get_logger()


# (canonical status, substrings, exact values) in priority order
STATUS_KEYWORDS: tuple[tuple[CanonicalStatus, frozenset[str], frozenset[str]], ...] = (
    (
        CanonicalStatus.RESOLVED,
        frozenset({"résolu", "resolu"}),
        frozenset({"terminé", "termine", "terminée", "terminee"}),
    ),
    (
        CanonicalStatus.CANCELLED,
        frozenset({"annulé", "annule"}),
        frozenset({"annulée", "annulee"}),
    ),
    (
        CanonicalStatus.IN_PROGRESS,
        frozenset({"en_cours", "en cours"}),
        frozenset(),
    ),
    (
        CanonicalStatus.PENDING,
        frozenset({"nouvelle", "en_attente", "en attente"}),
        frozenset(),
    ),
)

DEFAULT_STATUS = CanonicalStatus.IN_PROGRESS

# A keyword directly preceded by one of these does not match ("non résolu")
NEGATIONS = ("non ", "non-", "pas ")


def mentions(text: str, keyword: str) -> bool:
    """True when ``keyword`` occurs in ``text`` at least once without a negation."""
    start = text.find(keyword)
    while start != -1:
        if not text[:start].endswith(NEGATIONS):
            return True
        start = text.find(keyword, start + 1)
    return False


def classify(raw_status: Optional[str]) -> Optional[CanonicalStatus]:
    """
    Match a raw status against the keyword table.

    Returns:
        The first matching canonical status, or None when nothing matches
    """
    if raw_status is None:
        return None
    text = raw_status.strip().lower()
    if not text:
        return None

    for status, substrings, exact in STATUS_KEYWORDS:
        if text in exact or any(mentions(text, keyword) for keyword in substrings):
            return status
    return None


def normalize(raw_status: Optional[str]) -> CanonicalStatus:
    """Canonical status of a raw string; unknown strings default to in progress."""
    return classify(raw_status) or DEFAULT_STATUS


class StatusNormalizer:
    """
    Counts canonical statuses over a batch of raw status strings.

    Attributes:
        unrecognized: Number of statuses that fell back to the default
    """

    def __init__(self):
        self.unrecognized = 0

    def normalize(self, raw_status: Optional[str]) -> CanonicalStatus:
        status = classify(raw_status)
        if status is None:
            self.unrecognized += 1
            logger.debug("status_unrecognized", raw_status=raw_status)
            return DEFAULT_STATUS
        return status

    def breakdown(self, raw_statuses: Iterable[Optional[str]]) -> TicketStatusBreakdown:
        counts = {status: 0 for status in CanonicalStatus}
        for raw in raw_statuses:
            counts[self.normalize(raw)] += 1

        return TicketStatusBreakdown(
            total=sum(counts.values()),
            pending=counts[CanonicalStatus.PENDING],
            in_progress=counts[CanonicalStatus.IN_PROGRESS],
            resolved=counts[CanonicalStatus.RESOLVED],
            cancelled=counts[CanonicalStatus.CANCELLED],
        )
