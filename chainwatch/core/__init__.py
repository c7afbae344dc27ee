"""Configuration, logging, errors and the store connection."""
