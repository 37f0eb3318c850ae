"""PitchEdge: football prediction engine and bankroll staking."""

__version__ = "0.1.0"
