"""Configuration, logging, data models and helpers shared by the backend."""
