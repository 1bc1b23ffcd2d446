"""Oceanwatch: Puzzle Pirates ocean scraper and market order poller."""

__version__ = "1.0.0"
