"""
Cost-aware routing and escalation core for fiscal-advisory questions.

Every question is classified into a processing tier, checked against the
user's budget ledger, executed by the matching tier executor and, when worth
it, persisted as conversational memory.
"""

__version__ = "0.1.0"
