"""Multi-stage conversation pipeline over an append-only event log."""
