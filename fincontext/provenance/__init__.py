# Provenance package for the Financial Context Core
"""
Evidence building: source references, aggregations, lineage and confidence.
"""
