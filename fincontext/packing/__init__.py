# Packing package for the Financial Context Core
"""
Token budgeting, aggregate synthesis and diversity-constrained selection.
"""
