"""Security module — tokens, sessions, authorization rules, capabilities, audit."""
