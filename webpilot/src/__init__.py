"""webpilot core package."""
