"""Build BDD protocol messages from executed test runs."""
