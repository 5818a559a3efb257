"""Ticket order pipeline: booking, risk analysis, payment confirmation, alerts."""

__version__ = "0.1.0"
