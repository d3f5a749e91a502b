"""Service layer for the billing ledger."""
