"""dialogsync CLI package."""
