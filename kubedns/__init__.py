"""Cluster DNS helpers: record tree cache, federation flags, dnsmasq nanny and metrics, sidecar probes and e2e tooling."""

__version__ = "0.1.0"