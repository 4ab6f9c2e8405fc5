"""In-memory demo of the verification flow."""
