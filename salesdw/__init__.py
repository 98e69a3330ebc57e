"""
Sales Warehouse Loader

Loads raw sales transactions into a star-schema warehouse and maintains
store x product aggregate views.
"""

__version__ = "1.0.0"
