"""
rapbattle
Tournament judging and match-lifecycle engine for rap-battle tournaments.
"""
__version__ = "0.1.0"
