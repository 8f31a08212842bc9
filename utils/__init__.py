# Shared request parsing, response and logging helpers
