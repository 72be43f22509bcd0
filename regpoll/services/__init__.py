"""
regpoll Services

- device - Modbus TCP exchange, device list, polling and reading log
"""
