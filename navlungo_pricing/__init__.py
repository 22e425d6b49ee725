"""
Navlungo Pricing - shipping price lookups for the Navlungo portal.
"""

__version__ = "0.1.0"
