"""
Payloads exchanged between the analysis phase, the interactive protocol and
the execution phase. Field aliases follow the camelCase the upload client uses.
"""
from enum import Enum
from typing import List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchType(str, Enum):
    EXACT = "exact"
    AUTO = "auto"
    USER_CONFIRMED = "user-confirmed"


class Candidate(_Payload):
    employee_id: int
    canonical_name: str
    similarity_score: float
    is_user_confirmed: bool = False


class AutoMatchedName(_Payload):
    input_name: str
    employee_id: int
    match_type: MatchType
    similarity_score: float = 1.0


class NameConflict(_Payload):
    """An input name that a human has to bind or confirm as new.

    ``variants`` are other spellings in the same file that matched this name
    before it had an employee; they follow whatever is decided for it.
    ``similar_pending`` lists other names from the same file, themselves
    waiting for a decision, that look close enough to be the same person.
    """
    input_name: str
    candidates: List[Candidate] = Field(default_factory=list)
    confidence: Literal["low", "medium"] = "low"
    row_numbers: List[int] = Field(default_factory=list)
    variants: List[str] = Field(default_factory=list)
    similar_pending: List[str] = Field(default_factory=list)
    employee_number: Optional[str] = None


class NameAnalysisResult(_Payload):
    auto_matched: List[AutoMatchedName] = Field(default_factory=list)
    needs_resolution: List[NameConflict] = Field(default_factory=list)
    total_unique_names: int = 0
    errors: List[str] = Field(default_factory=list)


class DecisionAction(str, Enum):
    MATCH = "match"
    CREATE_NEW = "create-new"


class NameResolution(_Payload):
    """A human decision for one NameConflict."""
    input_name: str
    action: DecisionAction
    employee_id: Optional[int] = None
    confirmed_by_user: bool = True
    variants: Tuple[str, ...] = ()
    employee_number: Optional[str] = None

    @model_validator(mode="after")
    def _check_employee(self) -> "NameResolution":
        if self.action == DecisionAction.MATCH and self.employee_id is None:
            raise ValueError("A match decision needs an employee_id")
        if self.action == DecisionAction.CREATE_NEW and self.employee_id is not None:
            raise ValueError("A create-new decision cannot carry an employee_id")
        return self


class ResolvedName(_Payload):
    employee_id: int
    confirmed_by_user: bool = False
