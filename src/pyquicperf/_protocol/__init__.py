"""Sans-IO transfer engine: request codec, chunked writer, and session processors."""
