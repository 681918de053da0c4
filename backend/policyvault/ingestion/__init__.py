"""File ingestion pipeline for policyvault.

Parsers for CSV and XLSX buffers, the row normalizer producing six
record batches, the isolated worker process that runs both, and the
coordinator that persists the batches.
"""
