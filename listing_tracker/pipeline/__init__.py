"""
Pipeline package — lookup client, record store, tracking run and daily trigger.
"""
