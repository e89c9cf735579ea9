"""Tutor turn orchestration."""
