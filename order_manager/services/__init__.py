"""
                        Services Module

Business logic of the order workflow.

Services:
    - catalog: food/place name resolution
    - orders: transactional order creation and order queries
    - lifecycle: status reporting, execution dispatch, status updates
    - channel: in-memory / Redis broadcast to the order executor
"""

from order_manager.services.lifecycle import LifecycleManager

__all__ = ["LifecycleManager"]
