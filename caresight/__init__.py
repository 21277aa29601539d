"""
CareSight - clinical dashboard backend.

CSV uploads for maternal, cardiovascular and diabetes risk, forwarded to
external prediction services and explained with Gemini.
"""
__version__ = "1.0.0"
