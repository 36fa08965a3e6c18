"""Synthesis: matching, principle accumulation and axiom compression."""
