# ============================================================================
# RaceFi Backend v1.0.0
# Chain Module - Vault Contract Model and Backend Client
# ============================================================================
#
# The vault client lives in app.chain.vault_client and is imported from
# there directly; it depends on services.withdrawal_config, which in turn
# depends on app.chain.units.

from app.chain.token_withdrawal import TokenWithdrawal, ContractRevert, Role

__all__ = [
    "TokenWithdrawal",
    "ContractRevert",
    "Role",
]
