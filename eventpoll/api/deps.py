from typing import List

from eventpoll.ingestion.adapter import PollingAdapter
from eventpoll.services.adapter_service import get_adapters


def get_running_adapters() -> List[PollingAdapter]:
    return get_adapters()
