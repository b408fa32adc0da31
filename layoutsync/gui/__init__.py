"""Qt integration for layout sync clients."""
