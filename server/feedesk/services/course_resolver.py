"""
feedesk/services/course_resolver.py
Reconcile free-text course names against the course catalog.

Students carry a hand-typed ``course`` string (often misspelled or cut
short) and an optional ``course_id`` that may be stale. Every screen that
needs a course or a monthly fee goes through :class:`CourseResolver`, which
tries, in order:

1. the course linked through ``course_id`` (positive fee only)
2. exact match of the canonical name
3. substring containment either way
4. keyword buckets (IELTS, diplomas, office management, durations)
5. the keyword -> fee table, which yields a fee but no course

and otherwise reports ``unresolved``. Ties inside a rule are broken by a
total order on the candidates, so the catalog order never changes the
answer.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from feedesk.models.schemas import (
    Course, CourseResolution, MatchStage, ResolutionStatus,
)
import logging

logger = logging.getLogger(__name__)

MIN_SUBSTRING_LENGTH = 3

# (pattern, replacement); applied in order to lower-cased, whitespace-collapsed text
DEFAULT_TYPO_CORRECTIONS: Tuple[Tuple[str, str], ...] = (
    (r"\b(?:enhnce|enhcne|enhnace|enhance|enhcnce)\b", "enhanced"),
    (r"\b(?:couse|coures|cours|courss)\b", "course"),
    (r"\b(?:one|1)\s*year\s*diploma\b", "one year diploma"),
    (r"\b(?:six|6)\s*months?\b", "six months"),
)


@dataclass(frozen=True)
class KeywordBucket:
    """A hint that narrows the catalog when no name-based match exists."""
    name: str
    input_all: Tuple[str, ...] = ()
    input_any: Tuple[str, ...] = ()
    catalog_all: Tuple[str, ...] = ()
    catalog_any: Tuple[str, ...] = ()
    duration_months: Optional[int] = None

    def triggered_by(self, text: str) -> bool:
        if not all(term in text for term in self.input_all):
            return False
        return not self.input_any or any(term in text for term in self.input_any)

    def accepts(self, canonical_name: str, course: Course) -> bool:
        if self.duration_months is not None and course.duration_months != self.duration_months:
            return False
        if not all(term in canonical_name for term in self.catalog_all):
            return False
        return not self.catalog_any or any(term in canonical_name for term in self.catalog_any)


DEFAULT_KEYWORD_BUCKETS: Tuple[KeywordBucket, ...] = (
    KeywordBucket("ielts", input_any=("ielts",), catalog_all=("ielts",)),
    KeywordBucket("one-year-diploma", input_any=("one year",), catalog_all=("one year", "diploma")),
    KeywordBucket(
        "enhanced-office-management",
        input_all=("office", "management", "six months"),
        catalog_all=("office management",),
        catalog_any=("enhanced", "advance"),
    ),
    KeywordBucket(
        "office-management",
        input_any=("office", "management", "mgmt"),
        catalog_all=("office",),
    ),
    KeywordBucket("six-months", input_any=("six months",), duration_months=6),
    KeywordBucket("one-year", input_any=("one year", "12 months"), duration_months=12),
)

# (keywords, monthly fee); first entry with any keyword in the name wins
DEFAULT_FALLBACK_FEES: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("ielts",), 12500),
    (("office", "management"), 3000),
    (("amazon", "ecommerce"), 15000),
    (("website", "design"), 10000),
    (("autocad", "cad"), 5000),
    (("graphic",), 5000),
    (("freelancing",), 5000),
    (("diploma",), 4000),
    (("english", "spoken"), 4000),
    (("registration",), 1000),
)

# Inputs the CSV import must never map to a catalog entry
IMPORT_EXCLUDED_KEYWORDS: Tuple[str, ...] = ("diploma in it", "registration")


def collapse(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


class CourseResolver:
    """Match free-text course names to catalog entries."""

    def __init__(
        self,
        catalog: Iterable[Course],
        typo_corrections: Sequence[Tuple[str, str]] = DEFAULT_TYPO_CORRECTIONS,
        keyword_buckets: Sequence[KeywordBucket] = DEFAULT_KEYWORD_BUCKETS,
        fallback_fees: Sequence[Tuple[Tuple[str, ...], float]] = DEFAULT_FALLBACK_FEES,
        excluded_keywords: Sequence[str] = (),
    ):
        self._corrections = [(re.compile(p), r) for p, r in typo_corrections]
        self.keyword_buckets = tuple(keyword_buckets)
        self.fallback_fees = tuple(fallback_fees)
        self.excluded_keywords = tuple(k.lower() for k in excluded_keywords)
        self.catalog: List[Course] = list(catalog)
        self._canonical = [(self.canonicalize(c.name), c) for c in self.catalog]
        self._by_id = {}
        for course in sorted(self.catalog, key=lambda c: (self.canonicalize(c.name), c.id)):
            self._by_id.setdefault(course.id, course)

    def canonicalize(self, text: Optional[str]) -> str:
        canonical = collapse(text)
        for pattern, replacement in self._corrections:
            canonical = pattern.sub(replacement, canonical)
        return canonical.strip()

    def resolve(
        self,
        course_name: Optional[str],
        course_id: Optional[str] = None,
        linked_course: Optional[Course] = None,
    ) -> CourseResolution:
        if linked_course is None and course_id:
            linked_course = self._by_id.get(str(course_id))
        if linked_course is not None and linked_course.monthly_fee > 0:
            return self._resolved(linked_course, MatchStage.LINKED, linked_course.name)

        text = self.canonicalize(course_name)
        if not text:
            return self._unresolved(MatchStage.NONE)

        raw = collapse(course_name)
        for keyword in self.excluded_keywords:
            if keyword in raw:
                logger.info(f"Course '{course_name}' excluded from matching ({keyword})")
                return self._unresolved(MatchStage.EXCLUDED, keyword)

        exact = [(name, c) for name, c in self._canonical if name == text]
        if exact:
            return self._resolved(self._pick(text, exact), MatchStage.EXACT, text)

        if len(text) >= MIN_SUBSTRING_LENGTH:
            partial = [
                (name, c) for name, c in self._canonical
                if name and (text in name or (len(name) >= MIN_SUBSTRING_LENGTH and name in text))
            ]
            if partial:
                return self._resolved(self._pick(text, partial), MatchStage.SUBSTRING, text)

        for bucket in self.keyword_buckets:
            if not bucket.triggered_by(text):
                continue
            hits = [(name, c) for name, c in self._canonical if bucket.accepts(name, c)]
            if hits:
                return self._resolved(self._pick(text, hits), MatchStage.KEYWORD, bucket.name)

        for keywords, fee in self.fallback_fees:
            for keyword in keywords:
                if keyword in text:
                    logger.info(f"Course '{course_name}' priced from fee table via '{keyword}'")
                    return CourseResolution(
                        status=ResolutionStatus.FEE_TABLE,
                        stage=MatchStage.FEE_TABLE,
                        monthly_fee=float(fee),
                        matched_on=keyword,
                    )

        logger.warning(f"Could not resolve course '{course_name}' (course_id={course_id})")
        return self._unresolved(MatchStage.NONE)

    @staticmethod
    def _pick(text: str, candidates: List[Tuple[str, Course]]) -> Course:
        return min(candidates, key=lambda nc: (abs(len(nc[0]) - len(text)), nc[0], nc[1].id))[1]

    @staticmethod
    def _resolved(course: Course, stage: MatchStage, matched_on: str) -> CourseResolution:
        return CourseResolution(
            status=ResolutionStatus.RESOLVED,
            stage=stage,
            course=course,
            monthly_fee=course.monthly_fee,
            matched_on=matched_on,
        )

    @staticmethod
    def _unresolved(stage: MatchStage, matched_on: Optional[str] = None) -> CourseResolution:
        return CourseResolution(status=ResolutionStatus.UNRESOLVED, stage=stage, matched_on=matched_on)


def import_resolver(catalog: Iterable[Course]) -> CourseResolver:
    """Resolver used by the CSV import, which never maps registration or IT diploma rows."""
    return CourseResolver(catalog, excluded_keywords=IMPORT_EXCLUDED_KEYWORDS)
