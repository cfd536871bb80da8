"""Clients for Icarus and the Kubernetes API."""
