"""Vehicle diagnostics engine: adapter sessions, telemetry, trouble codes and health scores."""

__version__ = "0.1.0"
