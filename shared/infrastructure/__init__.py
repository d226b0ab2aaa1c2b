"""
Infrastructure: local store sessions and retry/backoff helpers.
"""
