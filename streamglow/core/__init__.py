"""
core — Constants, errors, configuration, lifecycle FSM and structured logging
shared by every other StreamGlow package.
"""
