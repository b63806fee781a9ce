"""
HTTP surface of the booking proxy.
"""
