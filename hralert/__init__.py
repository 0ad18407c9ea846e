"""Heart-rate threshold monitoring with debounced alerts.

The monitoring core (state machine, debounce, threshold and authorization
bookkeeping) is isolated from platform collaborators for easy testing.
"""
