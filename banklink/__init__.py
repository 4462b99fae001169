"""Bank-link dashboard API."""
