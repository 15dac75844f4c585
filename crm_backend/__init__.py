"""
Backend package for the customer follow-up CRM.

This package provides a FastAPI application over a storage facade that keeps
customers, follow-ups and the product catalog in memory and optionally
mirrors them to a SQL database.
"""
