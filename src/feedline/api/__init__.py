"""HTTP API for Feedline."""
