"""
Tabulation engine for multi-judge, multi-criterion competitions.
"""
__version__ = "1.0.0"
