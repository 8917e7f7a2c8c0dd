"""
Pydantic models for tracks, settings and review verdicts.
"""
