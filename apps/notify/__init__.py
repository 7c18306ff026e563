"""
Notify app.

Delivers incident notifications through configured channels (email, generic
webhook) and keeps the list of email subscribers.
"""
