"""
SEVEN T administration CLI.
"""
