"""Execution core: workspace, runner, engine and the shared command surface."""
