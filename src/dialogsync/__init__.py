"""dialogsync - client-side sync engine for multi-agent dialog workspaces."""
