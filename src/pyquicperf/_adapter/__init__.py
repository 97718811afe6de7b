"""Internal aioquic adapters for the benchmark client and server."""
