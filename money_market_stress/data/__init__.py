"""
Data layer: provider adapters, cache, aggregation and history.
"""
