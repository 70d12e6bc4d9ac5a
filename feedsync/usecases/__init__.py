"""Feed controller and session client."""
