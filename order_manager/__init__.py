"""
                Order Manager

Order-management backend: validates and transactionally persists
orders of foods and delivery places, tracks their lifecycle and
signals an external executor when an order should run.
"""

__version__ = "1.0.0"
