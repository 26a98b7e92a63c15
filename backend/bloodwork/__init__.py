"""Bloodwork: personal lab-value tracking backend."""
