"""
Treetracker Earnings API

HTTP service for earnings owed to growers:
- Filtered, paginated earnings listing
- Single payment confirmation
- CSV batch export and import of payment confirmations
"""

__version__ = "0.1.0"
