from ice.resolution.schemas import (
    AutoMatchedName,
    Candidate,
    DecisionAction,
    MatchType,
    NameAnalysisResult,
    NameConflict,
    NameResolution,
    ResolvedName,
)
from ice.resolution.snapshot import AliasSnapshot, Provisional
from ice.resolution.policy import Classification, MatchTier, classify_name
from ice.resolution.protocol import EventKind, ProtocolEvent, ProtocolState, ResolutionSession

__all__ = [
    "AutoMatchedName", "Candidate", "DecisionAction", "MatchType",
    "NameAnalysisResult", "NameConflict", "NameResolution", "ResolvedName",
    "AliasSnapshot", "Provisional",
    "Classification", "MatchTier", "classify_name",
    "EventKind", "ProtocolEvent", "ProtocolState", "ResolutionSession",
]
