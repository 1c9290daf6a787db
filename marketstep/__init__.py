"""
MarketStep - corporate event aggregation and grounded filing analysis.

Pulls earnings calendars, call transcripts and SEC filings into one
time-ordered event feed, and runs LLM analysis over filings with
follow-up questions answered only from the produced analysis.
"""

__version__ = "0.1.0"
