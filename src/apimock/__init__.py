"""
APIMock

Schema-driven mock API responses with scenarios, delays and error simulation.
"""

__version__ = '1.0.0'
