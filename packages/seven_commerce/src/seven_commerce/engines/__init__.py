"""
Commerce engines.

Order detection and lead analysis over customer conversations.
"""
