"""HTTP API adapters.

- handlers: route table mapping requests onto the driving ports
- http_server: stdlib HTTP server running in a worker thread
"""
