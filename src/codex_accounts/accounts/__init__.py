"""Persisted accounts and proxies, credential export, and editor reload."""
