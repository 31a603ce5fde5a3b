"""
Pledge Service

Pay-per-view donation pledge microservice providing:
- Pledge creation with Stripe card setup through checkout
- Setup reconciliation from webhooks and client confirmations
- Final view recording and campaign locking
- Off-session charge runs with per-pledge outcome tracking
- One-off donations

Port: 8260
"""

__version__ = "1.0.0"
__service__ = "pledge_service"
