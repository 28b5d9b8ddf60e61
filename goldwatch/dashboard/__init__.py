"""HTTP status view."""
