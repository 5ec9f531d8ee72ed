"""
XML Translator

Batch translation of Android strings.xml resources through a rate-limited
text-generation API, rotating among several API keys.
"""

__version__ = "0.2.0"
