"""Chess game viewer and analysis assistant."""
