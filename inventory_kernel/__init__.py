"""
Inventory Kernel

Transactional core of a QR-coded warehouse inventory:
- Collision-free code allocation in versioned formats
- Capacity-bounded storage admission under row locks
- Shipment item lifecycle from supplier intake to customer delivery
- Delivery attempts with compensating resolutions
"""

__version__ = "0.1.0"
