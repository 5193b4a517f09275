"""
Services package.

Business logic of the rewards core: referral chains and commissions,
credit vesting, balances, fraud scoring, rewards, VIP purchases and
withdrawals.
"""
