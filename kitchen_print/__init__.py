"""
                Kitchen Receipt Printing Service

Turns queued restaurant orders into ESC/POS receipts on a network
thermal printer, with bounded retries and printer health checks.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
