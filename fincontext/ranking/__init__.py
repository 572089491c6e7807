# Ranking package for the Financial Context Core
"""
Deterministic query relevance scoring.

Every score is decomposable into named components with human-readable
reasons.
"""
