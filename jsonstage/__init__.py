"""Two-pass staging of paginated JSON extracts into relational tables."""
