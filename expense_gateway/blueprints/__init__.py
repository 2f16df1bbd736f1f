"""
Concur Expense Gateway
Blueprint registry.
"""
