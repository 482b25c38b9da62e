"""
Resolution policy: classify one normalized name against an alias snapshot.

Pure function of its inputs. Order of checks:
1. exact normalized alias            -> EXACT
2. first-name gate per alias         (aliases failing it are never scored)
3. full-name similarity >= auto      -> AUTO_MATCH (unless the top score is tied
                                        between different owners)
4. otherwise                         -> NEEDS_RESOLUTION with every employee scoring
                                        >= manual threshold as a candidate, and every
                                        pending name in that band as a hint
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Literal, Optional
from ice.matching.normalize import first_token
from ice.matching.similarity import similarity
from ice.matching.thresholds import DEFAULT_THRESHOLDS, MatchingThresholds
from ice.resolution.schemas import Candidate
from ice.resolution.snapshot import AliasSnapshot, Owner, Provisional


class MatchTier(str, Enum):
    EXACT = "EXACT"
    AUTO_MATCH = "AUTO_MATCH"
    NEEDS_RESOLUTION = "NEEDS_RESOLUTION"


@dataclass
class Classification:
    tier: MatchTier
    owner: Optional[Owner] = None
    score: float = 0.0
    confirmed_by_user: bool = False
    candidates: List[Candidate] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)

    @property
    def confidence(self) -> Literal["low", "medium"]:
        return "medium" if self.candidates else "low"

    @property
    def is_provisional(self) -> bool:
        return isinstance(self.owner, Provisional)


def score_owners(
    normalized: str,
    snapshot: AliasSnapshot,
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> Dict[Owner, float]:
    """Best full-name score per owner, for aliases passing the first-name gate
    and reaching the manual-resolution threshold."""
    first_name = first_token(normalized)
    best: Dict[Owner, float] = {}
    for alias, entry in snapshot.items():
        if similarity(first_name, entry.first_name) < thresholds.first_name:
            continue
        score = similarity(normalized, alias)
        if score < thresholds.manual_resolution:
            continue
        if score > best.get(entry.owner, -1.0):
            best[entry.owner] = score
    return best


def classify_name(
    normalized: str,
    snapshot: AliasSnapshot,
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> Classification:
    exact = snapshot.lookup(normalized)
    if exact is not None:
        return Classification(
            tier=MatchTier.EXACT,
            owner=exact.owner,
            score=thresholds.exact_match,
            confirmed_by_user=exact.confirmed_by_user,
        )

    scores = score_owners(normalized, snapshot, thresholds)

    auto = {owner: s for owner, s in scores.items() if thresholds.confidence_level(s) in ("exact", "high")}
    if auto:
        top = max(auto.values())
        leaders = [owner for owner, s in auto.items() if s == top]
        if len(leaders) == 1:
            return Classification(tier=MatchTier.AUTO_MATCH, owner=leaders[0], score=top)

    return Classification(
        tier=MatchTier.NEEDS_RESOLUTION,
        candidates=rank_candidates(scores, snapshot, thresholds.max_candidates),
        pending=similar_pending(scores),
    )


def similar_pending(scores: Dict[Owner, float]) -> List[str]:
    """Input names still waiting for a human that scored in the candidate band, best first."""
    ranked = sorted(
        ((owner.input_name, s) for owner, s in scores.items() if isinstance(owner, Provisional)),
        key=lambda pair: (-pair[1], pair[0]),
    )
    return [name for name, _ in ranked]


def rank_candidates(
    scores: Dict[Owner, float],
    snapshot: AliasSnapshot,
    limit: int,
) -> List[Candidate]:
    # Provisional owners have no employee yet, so they cannot be offered
    ranked = sorted(
        ((owner, s) for owner, s in scores.items() if isinstance(owner, int)),
        key=lambda pair: (-pair[1], pair[0]),
    )
    return [
        Candidate(
            employee_id=employee_id,
            canonical_name=snapshot.canonical_names.get(employee_id, ""),
            similarity_score=round(score, 4),
            is_user_confirmed=employee_id in snapshot.confirmed_employees,
        )
        for employee_id, score in ranked[:limit]
    ]
