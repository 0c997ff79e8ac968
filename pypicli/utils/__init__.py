"""
Utility modules for pypicli: registry API client, validators, output and
chart helpers.
"""
