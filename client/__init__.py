"""Chat client: local key storage, directory access and the interactive CLI."""
