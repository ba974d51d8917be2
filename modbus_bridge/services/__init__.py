"""
Modbus Bridge Services

- Device Service - Modbus session, cycle selection, batching, block reads
- Publish Service - MQTT publishing
- Status Service - Active alarm counts from MariaDB
- Bridge Service - Wiring, timers, health endpoint
"""
