"""
OpsMetrics - operational metrics aggregation engine for a retail back office.

Turns independently stored entity collections (sales, line items, products,
stores, clients, sellers, reservations, service tickets, stock) into one
immutable OperationalSnapshot.
"""

__version__ = "0.1.0"
