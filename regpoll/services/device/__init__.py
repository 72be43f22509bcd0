"""
Device Service - Modbus Register Polling

Responsibilities:
- Encode/decode MBAP Read Holding Registers frames
- Run single-connection request/response exchanges
- Poll configured devices sequentially at a fixed interval
- Record every attempt in the reading log
"""

from .service import PollingService

__all__ = ["PollingService"]
