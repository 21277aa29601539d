"""
Core processing layers: ingestion, prediction, LLM recommendations, storage.
"""
