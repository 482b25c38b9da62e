import pytest
from ice.errors import ResolutionProtocolError
from ice.resolution import (
    Candidate,
    DecisionAction,
    EventKind,
    NameConflict,
    ProtocolState,
    ResolutionSession,
)


def conflicts():
    return [
        NameConflict(
            input_name="David Kohn",
            candidates=[Candidate(employee_id=1, canonical_name="David Cohen", similarity_score=0.82)],
            confidence="medium",
            row_numbers=[1],
        ),
        NameConflict(input_name="Moshe Cohen", row_numbers=[2], variants=["Moshe Kohen"], employee_number="7"),
        NameConflict(input_name="Dana Levi", row_numbers=[3]),
    ]


@pytest.fixture(name="protocol")
def protocol_fixture():
    return ResolutionSession(conflicts())


def test_decisions_advance_cursor(protocol):
    events = []
    protocol.subscribe(events.append)
    protocol.start()

    assert protocol.current.input_name == "David Kohn"
    protocol.match(1)
    assert protocol.index == 1
    protocol.create_new()
    assert protocol.index == 2
    protocol.create_new()
    # last item: stays put so submit can be triggered
    assert protocol.index == 2
    assert protocol.state == ProtocolState.AT_INDEX

    decisions = protocol.submit()
    assert protocol.state == ProtocolState.ALL_RESOLVED
    assert [d.input_name for d in decisions] == ["David Kohn", "Moshe Cohen", "Dana Levi"]
    assert decisions[0].action == DecisionAction.MATCH
    assert decisions[0].employee_id == 1
    assert decisions[1].action == DecisionAction.CREATE_NEW
    assert decisions[1].variants == ("Moshe Kohen",)
    assert decisions[1].employee_number == "7"

    kinds = [e.kind for e in events]
    assert kinds[0] == EventKind.PRESENT
    assert kinds.count(EventKind.DECISION) == 3
    assert kinds[-1] == EventKind.FINALIZED


def test_navigation_keeps_decisions(protocol):
    protocol.match(1)
    protocol.back()
    assert protocol.index == 0
    assert protocol.decision_for("David Kohn").employee_id == 1

    protocol.forward()
    protocol.forward()
    assert protocol.index == 2
    protocol.forward()
    assert protocol.index == 2

    protocol.go_to(0)
    protocol.create_new()
    # revised decision replaces the old one
    assert protocol.decision_for("David Kohn").action == DecisionAction.CREATE_NEW
    assert protocol.resolved_count == 1


def test_submit_jumps_to_first_unresolved(protocol):
    events = []
    protocol.subscribe(events.append)

    protocol.go_to(2)
    protocol.create_new()
    assert protocol.submit() is None
    assert protocol.state == ProtocolState.AT_INDEX
    assert protocol.index == 0
    assert EventKind.INCOMPLETE in [e.kind for e in events]
    assert [c.input_name for c in protocol.unresolved()] == ["David Kohn", "Moshe Cohen"]


def test_match_must_be_a_candidate(protocol):
    with pytest.raises(ResolutionProtocolError):
        protocol.match(99)
    protocol.forward()
    # no candidates at all: only create-new is possible
    with pytest.raises(ResolutionProtocolError):
        protocol.match(1)


def test_go_to_out_of_range(protocol):
    with pytest.raises(ResolutionProtocolError):
        protocol.go_to(3)


def test_cancel_without_decisions_is_silent(protocol):
    asked = []
    assert protocol.cancel(confirm=lambda n: asked.append(n) or True)
    assert asked == []
    assert protocol.state == ProtocolState.CANCELLED
    assert protocol.current is None
    with pytest.raises(ResolutionProtocolError):
        protocol.create_new()


def test_cancel_with_decisions_needs_confirmation(protocol):
    protocol.match(1)

    assert not protocol.cancel()
    assert not protocol.cancel(confirm=lambda n: False)
    assert protocol.state == ProtocolState.AT_INDEX
    assert protocol.resolved_count == 1

    asked = []
    assert protocol.cancel(confirm=lambda n: asked.append(n) or True)
    assert asked == [1]
    assert protocol.state == ProtocolState.CANCELLED
    assert protocol.decisions == {}


def test_empty_session_is_resolved():
    protocol = ResolutionSession([])
    assert protocol.state == ProtocolState.ALL_RESOLVED
    assert protocol.submit() == []


def test_duplicate_names_rejected():
    with pytest.raises(ValueError):
        ResolutionSession([NameConflict(input_name="a"), NameConflict(input_name="a")])


def test_unsubscribe(protocol):
    events = []
    unsubscribe = protocol.subscribe(events.append)
    protocol.match(1)
    unsubscribe()
    protocol.create_new()
    assert [e.kind for e in events] == [EventKind.DECISION, EventKind.PRESENT]
