"""Stylization pipeline: generation/review loop, orchestrator, runner."""
