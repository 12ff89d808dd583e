"""Share daemon test suite."""
