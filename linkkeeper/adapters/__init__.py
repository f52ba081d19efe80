"""Integration adapters.

Adapters connect the dispatch service to external chat platforms.
"""
