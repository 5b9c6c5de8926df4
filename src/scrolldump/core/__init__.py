"""Core export engine, client and configuration."""
