"""Medicine reminder backend: notification scheduling and pharmacy stock ledger."""
