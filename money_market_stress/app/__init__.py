"""
HTTP service exposing snapshots, spreads, history and the stress score.
"""
