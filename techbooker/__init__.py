"""
techbooker - appointment booking for a technician dispatch business.
"""

__version__ = "0.1.0"
