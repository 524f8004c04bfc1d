"""
Inventory across locations (one STORE, any number of BARs).

Models:
- InventoryItem (catalog entry, shared by every location)
- LocationStock (current stock per item per location)
- StockMovement (append-only audit of every stock change)
- Transfer (request to move stock between two locations)
"""

from .item import InventoryItem  # noqa: F401
from .stock import LocationStock  # noqa: F401
from .movement import StockMovement  # noqa: F401
from .transfer import Transfer  # noqa: F401
