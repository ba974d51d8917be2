"""Publish Service - MQTT"""

from .publisher import MqttPublisher, Publisher, encode_json

__all__ = ["MqttPublisher", "Publisher", "encode_json"]
