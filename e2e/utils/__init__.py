"""Seeding, payload and verification helpers for the validation harness."""
