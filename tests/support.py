"""Ids shared by the fixtures in conftest.py and the test modules."""

USER = "user-pro"
INSTITUTIONAL_USER = "user-inst"
FREE_USER = "user-free"
STRATEGY = "strat-1"
