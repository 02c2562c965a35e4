"""
Background task execution.

- **periodic_task.py**: Fixed-interval asyncio runner used for config polling,
  rate-limit cleanup and relay heartbeats.
"""
