"""Ticket Bridge: order-ticket routing and printing for restaurant POS."""

__version__ = '1.0.0'
