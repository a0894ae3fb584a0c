"""
Daily Tracker backend package.

The FastAPI application lives in `tracker_api.main`; the pure date and
recurrence calculations live in `tracker_api.core`.
"""
