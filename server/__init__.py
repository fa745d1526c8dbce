"""Public key directory service."""
