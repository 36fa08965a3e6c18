"""Core domain types and errors."""
