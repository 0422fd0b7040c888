"""
raidsync: post-raid profile reconciliation.

Folds a client's post-raid snapshot into the authoritative player profile,
applying death penalties, insurance capture and scheduling, found-in-raid
provenance and scav karma.
"""

__version__ = "0.1.0"
