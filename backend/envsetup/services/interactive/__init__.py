"""Interactive selection dialog sessions."""
