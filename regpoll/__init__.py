"""
regpoll - Modbus TCP holding-register poller
"""

__version__ = "0.1.0"
