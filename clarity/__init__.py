"""
Clarity Budgets - Source Package

A personal budgeting assistant: log expenses, incomes and loans,
set per-category budgets, and get AI categorization and saving tips.

DESIGN PRINCIPLES:
1. Derived numbers are recomputed, never stored
2. Validate before mutating anything
3. AI suggests, the user decides
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Clarity Budgets Team"
