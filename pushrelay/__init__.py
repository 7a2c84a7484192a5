"""Relay encrypted Web Push deliveries from a federated server to a mobile push provider."""

__version__ = "0.1.0"
