"""Targeting, batched fan-out and outcome accounting for broadcasts."""
