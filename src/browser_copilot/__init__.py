"""Human-in-the-loop browser copilot."""
