"""
Delivery Service

Delivery tracking microservice providing:
- Fee quotes priced from store and customer coordinates
- Delivery lifecycle (create, accept, pick up, transit, deliver, cancel)
- Append-only status history and public tracking by tracking number
- Rider and admin delivery listings

Port: 8260
"""

__version__ = "1.0.0"
__service__ = "delivery_service"
