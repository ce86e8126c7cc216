"""Bank statement lines, match suggestions and reconciliation."""
