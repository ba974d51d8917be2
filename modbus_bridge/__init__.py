"""
Modbus Bridge

Polls holding registers from a Modbus TCP device and republishes them
over MQTT as telemetry and alarm streams, together with a periodic
active-alarm summary read from MariaDB.
"""

__version__ = "1.0.0"
