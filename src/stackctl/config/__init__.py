"""Configuration layer — settings, env-file resolution and logging setup."""
