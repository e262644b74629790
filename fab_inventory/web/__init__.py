"""Web interface for the inventory ledger."""
