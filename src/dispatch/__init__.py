"""Operator intents and the command dispatcher."""
