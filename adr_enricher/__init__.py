"""
ADR report enrichment service.

Consumes report-created events from RabbitMQ, analyzes each adverse drug
reaction report with Gemini (or a rule-based fallback) and writes the
structured analysis back onto the report record.
"""

__version__ = "0.1.0"
