"""
Agency Kernel - case lifecycle and financial reconciliation core.

A transactional, audit-first core for an education agency with:
- A closed case status graph with guarded transitions
- Price-locked service snapshots
- Integer minor-unit money ledger
- Payout request workflow over accrued rewards
- Hash-chained audit trail
"""

__version__ = "0.1.0"
