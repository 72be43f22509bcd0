import threading

from regpoll.common.config import DeviceConfig
from regpoll.services.device.device_manager import DeviceRegistry


def test_append_returns_assigned_index():
    registry = DeviceRegistry([DeviceConfig(name="Meter", host="10.0.0.5")])

    index = registry.append(DeviceConfig(name="Inverter", host="10.0.0.6"))

    assert index == 1
    assert registry.get(index).name == "Inverter"


def test_concurrent_appends_get_their_own_index():
    registry = DeviceRegistry()
    assigned: dict[str, int] = {}

    def worker(prefix: str) -> None:
        for i in range(200):
            name = f"{prefix}-{i}"
            assigned[name] = registry.append(DeviceConfig(name=name, host="10.0.0.5"))

    threads = [threading.Thread(target=worker, args=(p,)) for p in "abcd"]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    devices = registry.snapshot()
    assert len(devices) == 800
    assert all(devices[index].name == name for name, index in assigned.items())
