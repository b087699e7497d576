"""Short-link creation and resolution service."""
