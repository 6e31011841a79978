"""
Interest compatibility scoring.

Candidates are compared to the seeker by Jaccard similarity of their
interest tag sets. Candidate sets are fetched in one pipelined round trip.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from config.settings import Settings, settings as default_settings
from core.queue_store import WaitingPoolStore, interests_key

logger = logging.getLogger(__name__)


@dataclass
class Similarity:
    score: float  # Jaccard similarity (0..1)
    overlap: int  # |A ∩ B|
    union: int  # |A ∪ B|
    shared: List[str] = field(default_factory=list)


@dataclass
class ScoredCandidate:
    candidate_id: str
    similarity: Similarity


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Lower-case, strip and de-duplicate tags, keeping first-seen order."""
    seen = []
    for tag in tags:
        if not tag:
            continue
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def similarity(seeker: Set[str], other: Set[str]) -> Similarity:
    shared = sorted(seeker & other)
    overlap = len(shared)
    union = len(seeker | other)
    score = 0.0 if union == 0 else overlap / union
    return Similarity(score=score, overlap=overlap, union=union, shared=shared)


class CompatibilityScorer:
    """Picks the most compatible candidate above configurable thresholds."""

    def __init__(self, store: WaitingPoolStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings
        self.min_shared = self.settings.MATCH_MIN_SHARED
        self.min_jaccard = self.settings.MATCH_MIN_JACCARD
        self.sample = self.settings.MATCH_SAMPLE

    def accepts(self, sim: Similarity) -> bool:
        """A winner must share enough tags or be similar enough overall."""
        if sim.overlap <= 0:
            return False
        return sim.overlap >= self.min_shared or sim.score >= self.min_jaccard

    async def fetch_interests(self, candidate_ids: List[str]) -> List[Set[str]]:
        return await self.store.members_many([interests_key(cid) for cid in candidate_ids])

    def select(self, seeker_tags: Iterable[str], candidates: List[str], candidate_tags: List[Set[str]]) -> Optional[ScoredCandidate]:
        """
        Score already-fetched candidate sets and apply the thresholds.

        The first candidate with a strictly higher score replaces the current
        best, so ties go to the earliest candidate.
        """
        seeker = set(normalize_tags(seeker_tags))
        if not seeker:
            return None

        best: Optional[ScoredCandidate] = None
        for candidate_id, tags in zip(candidates, candidate_tags):
            if not tags:
                continue
            sim = similarity(seeker, {t.lower() for t in tags})
            logger.debug(f"Candidate {candidate_id}: overlap={sim.overlap} union={sim.union} score={sim.score:.3f}")
            if best is None or sim.score > best.similarity.score:
                best = ScoredCandidate(candidate_id=candidate_id, similarity=sim)

        if best is None or not self.accepts(best.similarity):
            return None
        return best

    async def pick_best(self, seeker_id: str, seeker_tags: Iterable[str], candidate_ids: List[str]) -> Optional[ScoredCandidate]:
        """
        Score a bounded sample of candidates against the seeker.

        Args:
            seeker_id: Requester id, never scored against itself
            seeker_tags: Requester interest tags
            candidate_ids: Candidate ids in first-seen order

        Returns:
            Best candidate clearing the thresholds, or None
        """
        pool = [cid for cid in candidate_ids[:self.sample] if cid != seeker_id]
        if not pool:
            return None
        candidate_tags = await self.fetch_interests(pool)
        return self.select(seeker_tags, pool, candidate_tags)
