"""Commission domain services."""
