"""Submission proof, review workflow and state machine."""
