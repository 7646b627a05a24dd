"""
Financial Tracking Engine - Source Package

Domain core of a personal finance tracker: installment-aware transaction
deletes, savings goals, monthly budgets and goal classification.

DESIGN PRINCIPLES:
1. Engines compute, the service layer persists
2. Fail early, fail visibly
3. No silent corrections
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Financial Tracking Team"
