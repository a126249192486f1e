"""
Apple receipt verification - interprets App Store verifyReceipt responses.
"""

__version__ = "0.1.0"
