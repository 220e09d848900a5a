"""Service layer: event workflow, availability ledger, notifications and scheduled jobs."""
