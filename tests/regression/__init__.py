"""Regression tests for the book's recorded results.

Covers the properties every run must keep:
- Re-running deterministic snippets yields identical output
- Seeded randomness is byte-identical across runs
- Baseline comparison flags snippets that stopped passing
"""
