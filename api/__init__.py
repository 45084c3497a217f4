"""HTTP API cho poolscaler."""
