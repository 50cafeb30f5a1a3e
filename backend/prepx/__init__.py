"""
PrepX billing and entitlements service.

Decides feature access for UPSC-preparation users and keeps subscription
state in step with billing-provider webhooks.
"""

__version__ = "0.1.0"
