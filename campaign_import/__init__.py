"""Bulk import of campaign daily records from Excel workbooks.

Sheets are routed to product types, parsed and validated per row, checked
against the authoritative submission store and finally upserted with progress
recomputation for every affected submission.
"""

__version__ = "0.1.0"
