"""Configuration, logging and error kinds shared across the package."""
