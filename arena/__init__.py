"""
Arena: Multi-Provider Comparison Gateway

Submits one user-authored request to several independently hosted generative
AI backends (OpenRouter chat models, fal.ai and Hugging Face image models)
concurrently, and returns directly comparable, normalized results annotated
with latency, token accounting, and a heuristic trust score.
"""

__version__ = "0.1.0"
