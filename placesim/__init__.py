"""Command-line entry point for the placement makespan simulator."""
