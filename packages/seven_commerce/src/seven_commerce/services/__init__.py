"""
Commerce services.

Orders and stock, credits, plans, notifications and admin anomalies.
"""
