"""
Units module - Contract units and their operations.

This module provides factory functions and pure operations for:
- Token units with optional mint/burn rights
- Crowdsale units selling one token for the native currency
- Disbursement units for batch airdrops

All unit factories and related functions are re-exported here for convenience.
"""

# Token units
from .token import (
    create_token_unit,
    issuance_moves,
    compute_issuance,
    compute_transfer,
    compute_approve,
    compute_transfer_from,
    compute_mint,
    compute_burn,
    balance_of,
    allowance,
    total_supply,
    circulating_supply,
    get_token_info,
    is_mintable,
    is_burnable,
)

# Crowdsale units
from .crowdsale import (
    SaleStatus,
    create_crowdsale_unit,
    get_sale_status,
    compute_purchase,
    receive_payment,
    compute_claim_refund,
    compute_withdraw_eth,
    compute_withdraw_tokens as compute_sale_withdraw_tokens,
    compute_change_rate,
    compute_cancel,
    compute_shorten_deadline,
    ico_has_ended,
    ico_cancelled,
    get_total_tokens_sold,
    get_rate,
    get_eth_soft_cap,
    get_deadline,
    get_total_raised,
    get_contribution,
    get_token_address,
    held_currency,
    sale_summary,
)

# Disbursement units
from .disbursement import (
    MAX_BATCH_SIZE,
    create_disbursement_unit,
    compute_single_value_airdrop,
    compute_multi_value_airdrop,
    compute_withdraw_tokens as compute_airdrop_withdraw_tokens,
)

__all__ = [
    # Token
    'create_token_unit',
    'issuance_moves',
    'compute_issuance',
    'compute_transfer',
    'compute_approve',
    'compute_transfer_from',
    'compute_mint',
    'compute_burn',
    'balance_of',
    'allowance',
    'total_supply',
    'circulating_supply',
    'get_token_info',
    'is_mintable',
    'is_burnable',
    # Crowdsale
    'SaleStatus',
    'create_crowdsale_unit',
    'get_sale_status',
    'compute_purchase',
    'receive_payment',
    'compute_claim_refund',
    'compute_withdraw_eth',
    'compute_sale_withdraw_tokens',
    'compute_change_rate',
    'compute_cancel',
    'compute_shorten_deadline',
    'ico_has_ended',
    'ico_cancelled',
    'get_total_tokens_sold',
    'get_rate',
    'get_eth_soft_cap',
    'get_deadline',
    'get_total_raised',
    'get_contribution',
    'get_token_address',
    'held_currency',
    'sale_summary',
    # Disbursement
    'MAX_BATCH_SIZE',
    'create_disbursement_unit',
    'compute_single_value_airdrop',
    'compute_multi_value_airdrop',
    'compute_airdrop_withdraw_tokens',
]
