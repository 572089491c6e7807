# Normalization package for the Financial Context Core
"""
Record-to-snippet normalization.

Every input record, whatever its shape, becomes exactly one Snippet with
human-readable text and an estimated token count.
"""
