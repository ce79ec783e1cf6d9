"""Domain models shared by the billing ledger, payments and persistence layers."""
