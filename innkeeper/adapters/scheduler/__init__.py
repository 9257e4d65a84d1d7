"""Scheduler adapters for driving the periodic sweeps.

- daemon: asyncio tasks with one fixed interval per job
"""
