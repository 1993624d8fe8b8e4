"""Timer-driven services: control surface, displays, demo script, alerts, countdown."""
