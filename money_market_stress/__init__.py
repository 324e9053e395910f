"""
Money-market stress monitor.

Fetches short-term funding rates (SOFR, EFFR, IORB, tri-party and GC repo,
O/N RRP, EURIBOR, SONIA, FX) from several providers, derives spreads and
facility indicators, and condenses them into a composite stress score.
"""

__version__ = "0.1.0"
