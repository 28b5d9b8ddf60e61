"""Alerts module - transport, fan-out, subscriptions and chat commands."""
