"""Business logic for the earnings API."""
