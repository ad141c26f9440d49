"""
============================================================================
Property-Based Tests for TokenWithdrawal Vault Invariants
============================================================================

Reliability Level: L6 Critical

Each example deploys a fresh vault on a manual clock and drives it with a
generated sequence of requests, confirmations, clock moves and executions.

Properties tested:
- Property 1: Wei executed within one UTC day never exceeds the daily limit
- Property 2: No request executes with fewer than the required confirmations
- Property 3: No request executes before its withdrawal delay has elapsed
- Property 4: Vault balance plus paid-out balances equals total deposits
- Property 5: A request executes at most once

============================================================================
"""

from collections import defaultdict

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from app.chain.token_withdrawal import (
    SECONDS_PER_DAY,
    WITHDRAWAL_DELAY,
    ContractRevert,
    ManualClock,
    deploy,
)

ADMIN = "0x" + "ad" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20
RECIPIENTS = ["0x" + "e1" * 20, "0x" + "e2" * 20]

WEI = 10 ** 18
DAILY_LIMIT = 10 * WEI
FUNDING = 1000 * WEI

# 2026-03-02T00:00:00Z
GENESIS = 1772409600


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

amount_strategy = st.integers(min_value=1, max_value=6).map(lambda n: n * WEI)

action_strategy = st.one_of(
    st.tuples(st.just("request"), amount_strategy, st.sampled_from(RECIPIENTS)),
    st.tuples(st.just("confirm"), st.sampled_from([ALICE, BOB, CAROL]), st.integers(0, 20)),
    st.tuples(st.just("execute"), st.integers(0, 20)),
    st.tuples(st.just("advance"), st.integers(0, SECONDS_PER_DAY)),
)


def _run(actions):
    clock = ManualClock(GENESIS)
    vault = deploy(ADMIN, [ALICE, BOB, CAROL], DAILY_LIMIT, clock=clock)
    vault.receive_eth(ADMIN, FUNDING)

    request_ids = []
    executed_at = {}
    spent_per_day = defaultdict(int)

    for action in actions:
        kind = action[0]
        try:
            if kind == "request":
                _, amount, to = action
                request_ids.append(vault.request_eth_withdrawal(ALICE, to, amount))
            elif kind == "confirm":
                _, confirmer, index = action
                if request_ids:
                    vault.confirm_withdrawal(confirmer, request_ids[index % len(request_ids)])
            elif kind == "execute":
                _, index = action
                if request_ids:
                    request_id = request_ids[index % len(request_ids)]
                    request = vault.get_request(request_id)
                    confirmations = request.confirmation_count
                    vault.execute_withdrawal(BOB, request_id)

                    assert request_id not in executed_at
                    assert confirmations >= vault.required_confirmations
                    assert clock() >= request.requested_at + WITHDRAWAL_DELAY
                    executed_at[request_id] = clock()
                    spent_per_day[clock() // SECONDS_PER_DAY] += request.amount
            else:
                clock.advance(action[1])
        except ContractRevert:
            pass

    return vault, spent_per_day


# =============================================================================
# PROPERTIES
# =============================================================================

class TestVaultInvariants:

    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    @given(actions=st.lists(action_strategy, min_size=1, max_size=60))
    def test_invariants_hold(self, actions) -> None:
        vault, spent_per_day = _run(actions)

        for spent in spent_per_day.values():
            assert spent <= DAILY_LIMIT

        paid_out = sum(vault.token_balance_of(None, r) for r in RECIPIENTS)
        assert vault.balance_of(None) + paid_out == FUNDING

    @settings(max_examples=100)
    @given(amounts=st.lists(amount_strategy, min_size=1, max_size=8))
    def test_same_day_executions_capped(self, amounts) -> None:
        clock = ManualClock(GENESIS)
        vault = deploy(ADMIN, [ALICE, BOB], DAILY_LIMIT, clock=clock)
        vault.receive_eth(ADMIN, FUNDING)

        request_ids = []
        for amount in amounts:
            request_id = vault.request_eth_withdrawal(ALICE, RECIPIENTS[0], amount)
            vault.confirm_withdrawal(BOB, request_id)
            request_ids.append(request_id)
        clock.advance(WITHDRAWAL_DELAY)

        executed = 0
        for request_id, amount in zip(request_ids, amounts):
            try:
                vault.execute_withdrawal(ALICE, request_id)
                executed += amount
            except ContractRevert as e:
                assert e.reason == "Daily withdrawal limit exceeded"
                assert executed + amount > DAILY_LIMIT

        assert executed <= DAILY_LIMIT
        assert vault.spent_today() == executed
