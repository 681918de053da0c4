"""Policyvault: policy spreadsheet ingestion service with load-triggered self-restart."""
