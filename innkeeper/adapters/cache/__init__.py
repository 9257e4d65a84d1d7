"""Cache adapters for the derived available-unit count.

Implementations:
- memory: in-process dictionary (single instance, tests, CLI)
- redis: shared Redis backend for multi-instance deployments
"""
