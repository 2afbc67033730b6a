# Delivery package
from eventpoll.delivery.shipper import EventShipper
from eventpoll.delivery.sink import DeliveryMessage, EventSink, JsonlFileSink

__all__ = [
    "DeliveryMessage",
    "EventShipper",
    "EventSink",
    "JsonlFileSink",
]
