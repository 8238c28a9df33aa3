"""European Parliament voting network analytics."""
