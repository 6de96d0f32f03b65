"""Options, equation scheduling, profiling and the main loop of equation-based simulations."""

__version__ = "0.1.0"

__all__ = ["cli", "options", "partitioning", "profiler", "scheduler", "simulation"]