"""
============================================================================
Property-Based Tests for Withdrawal State Machine Transitions
============================================================================

Reliability Level: L6 Critical

Tests the withdrawal lifecycle state machine using Hypothesis.

Properties tested:
- Property 1: Every listed transition is accepted
- Property 2: Every unlisted transition is rejected with WDR-030
- Property 3: Terminal states admit no transition
- Property 4: Any accepted walk from pending ends in at most two steps

Error Codes:
- WDR-030: Invalid state transition attempted

============================================================================
"""

from typing import List, Tuple

from hypothesis import given, settings
from hypothesis import strategies as st

from services.withdrawal_state_machine import (
    TERMINAL_STATES,
    VALID_STATES,
    VALID_TRANSITIONS,
    WithdrawalStateErrorCode,
    is_terminal_state,
    validate_transition,
)


# =============================================================================
# CONSTANTS
# =============================================================================

ALL_VALID_TRANSITION_PAIRS: List[Tuple[str, str]] = [
    (from_state, to_state)
    for from_state, to_states in VALID_TRANSITIONS.items()
    for to_state in to_states
]

ALL_INVALID_TRANSITION_PAIRS: List[Tuple[str, str]] = [
    (from_state, to_state)
    for from_state in VALID_STATES
    for to_state in VALID_STATES
    if to_state not in VALID_TRANSITIONS.get(from_state, [])
]


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

state_strategy = st.sampled_from(VALID_STATES)

valid_transition_strategy = st.sampled_from(ALL_VALID_TRANSITION_PAIRS)

invalid_transition_strategy = st.sampled_from(ALL_INVALID_TRANSITION_PAIRS)

correlation_id_strategy = st.uuids().map(str)

unknown_state_strategy = st.text(min_size=1, max_size=20).filter(
    lambda s: s not in VALID_STATES
)


# =============================================================================
# PROPERTIES
# =============================================================================

class TestValidTransitions:

    @settings(max_examples=100)
    @given(pair=valid_transition_strategy, correlation_id=correlation_id_strategy)
    def test_listed_transitions_accepted(self, pair, correlation_id) -> None:
        current, target = pair
        assert validate_transition(current, target, correlation_id) == (True, None)


class TestInvalidTransitions:

    @settings(max_examples=100)
    @given(pair=invalid_transition_strategy)
    def test_unlisted_transitions_rejected(self, pair) -> None:
        current, target = pair
        ok, code = validate_transition(current, target)
        assert ok is False
        assert code == WithdrawalStateErrorCode.INVALID_TRANSITION

    @settings(max_examples=100)
    @given(terminal=st.sampled_from(sorted(TERMINAL_STATES)), target=state_strategy)
    def test_terminal_states_are_final(self, terminal, target) -> None:
        assert validate_transition(terminal, target)[0] is False

    @settings(max_examples=100)
    @given(unknown=unknown_state_strategy, known=state_strategy)
    def test_unknown_states_rejected(self, unknown, known) -> None:
        assert validate_transition(unknown, known)[0] is False
        assert validate_transition(known, unknown)[0] is False


class TestLifecycleWalks:

    @settings(max_examples=200)
    @given(choices=st.lists(state_strategy, min_size=1, max_size=10))
    def test_walk_from_pending_terminates(self, choices) -> None:
        state = "pending"
        steps = 0
        for target in choices:
            ok, _ = validate_transition(state, target)
            if ok:
                state = target
                steps += 1
        assert steps <= 2
        if is_terminal_state(state):
            assert state in ("executed", "cancelled")
        if state == "executed":
            assert steps == 2
