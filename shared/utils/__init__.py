"""
Utilities: domain exceptions and money helpers.
"""
