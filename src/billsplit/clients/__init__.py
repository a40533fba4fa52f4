"""API clients for BillSplit."""
