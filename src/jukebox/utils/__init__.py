"""Small shared helpers with no domain dependencies."""
