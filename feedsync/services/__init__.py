"""Transports: HTTP, push channel and Slack helper."""
