"""ledger-doctor: receivables ledger import, reconciliation and risk scoring."""

__version__ = "0.1.0"
