"""Configuration: environment settings, business constants, logging, database."""
