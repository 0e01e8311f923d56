"""Utility functions for the pharmacy kernel."""

from pharmacy_kernel.utils.hashing import canonicalize_json, hash_payload, json_safe

__all__ = ["canonicalize_json", "hash_payload", "json_safe"]
