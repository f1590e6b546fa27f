"""
MFL League Analytics.

Season stats, lineup efficiency and rankings for a MyFantasyLeague league,
served over a Flask JSON API.
"""

__version__ = '1.0.0'
