"""Helpers for managed cluster upgrades: node cordon checks, drains, maintenance silences and notifications."""

__version__ = "0.1.0"