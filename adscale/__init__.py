"""
AdScale - performance-threshold budget scaling suggestions for Meta Ads
"""
__version__ = "0.1.0"
