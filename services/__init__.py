"""
============================================================================
RaceFi Backend v1.0.0 - Services Layer
============================================================================

Withdrawal multisig (models, state machine, config, store, gateway,
execution worker) and the user / audit repositories.

Modules are imported directly, e.g.
    from services.withdrawal_gateway import WithdrawalGateway

Reliability Level: L6 Critical
============================================================================
"""
