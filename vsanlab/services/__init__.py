"""Service layer: one class or module per control-plane concern."""
