"""
Standard type definitions for database models.

Provides consistent types for monetary and percentage fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for credit amounts, balances, commissions
# Precision: 18 digits total, 2 after decimal point
# Range: up to 9,999,999,999,999,999.99
MoneyType = DECIMAL(18, 2)

# Commission percentage type
# Precision: 5 digits total, 2 after decimal point
# Range: 0.00 to 999.99
PercentType = DECIMAL(5, 2)
