"""ACP agent, event loop and update mapping."""
