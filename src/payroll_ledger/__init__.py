"""Payroll ledger engine.

Salary component registry, payroll periods, per-employee ledger
calculation, the ledger approval/payment workflow and its audit trail.
"""

__version__ = "0.1.0"
