"""
WhatsApp Services

Inbound pipeline, keyword automation and AI replies.
"""
