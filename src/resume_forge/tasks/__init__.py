"""Tracked tasks: store, admission, executors, picker, reaper, and subscriptions."""
