# storefront/utils/devices.py
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from storefront.config import settings
from storefront.schemas.user import Identity
from storefront.utils.cart_engine import CartEngine, CartState
from storefront.utils.cart_store import CartStore
from storefront.utils.local_storage import FileLocalStorage, LocalStorage
from storefront.utils.session import SessionProvider

logger = logging.getLogger(__name__)


@dataclass
class DeviceSession:
    device_id: str
    session: SessionProvider
    engine: CartEngine
    store: CartStore
    leases: int = 0  # requests currently holding this device

    @property
    def in_use(self) -> bool:
        return self.leases > 0 or self.engine.busy


def file_storage_for(device_id: str) -> LocalStorage:
    return FileLocalStorage(Path(settings.LOCAL_STORAGE_DIR) / f"{device_id}.json")


class DeviceRegistry:
    """Live session + cart engine per browser device, least recently used first out.

    Devices in use by a request are never evicted, so one device storage is
    never driven by two engines at once. When every device over the cap is in
    use the registry grows past `max_devices` until they are released.
    """

    def __init__(
        self,
        store_factory: Callable[[], CartStore],
        storage_factory: Callable[[str], LocalStorage] = file_storage_for,
        max_devices: int = None,
    ):
        self.store_factory = store_factory
        self.storage_factory = storage_factory
        self.max_devices = max_devices or settings.MAX_DEVICES
        self._devices: "OrderedDict[str, DeviceSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._devices

    async def get(self, device_id: str) -> DeviceSession:
        device = self._devices.get(device_id)
        if device is not None:
            self._devices.move_to_end(device_id)
            return device

        store = self.store_factory()
        session = SessionProvider()
        engine = CartEngine(store, self.storage_factory(device_id))
        await engine.bind(session)
        device = DeviceSession(device_id=device_id, session=session, engine=engine, store=store)
        self._devices[device_id] = device

        await self._evict(keep=device_id)
        return device

    @asynccontextmanager
    async def lease(self, device_id: str) -> AsyncIterator[DeviceSession]:
        """Hold a device for the duration of a request."""
        device = await self.get(device_id)
        device.leases += 1
        try:
            yield device
        finally:
            device.leases -= 1

    async def sync_identity(
        self, device: DeviceSession, identity: Optional[Identity], access_token: Optional[str] = None
    ) -> None:
        """Feed the caller's identity to the device session.

        A change of identity drives the engine through its transitions; an
        engine left unbound by an earlier failure is retried here.
        """
        set_token = getattr(device.store, "set_access_token", None)
        if set_token is not None:
            set_token(access_token)

        await device.session.resolve(identity)
        if device.engine.state is CartState.SETTLING:
            logger.info("Retrying cart binding for device %s", device.device_id)
            await device.engine.handle_session_change(device.session.identity)

    async def close(self) -> None:
        while self._devices:
            _, device = self._devices.popitem(last=False)
            await self._close(device)

    async def _evict(self, keep: str) -> None:
        while len(self._devices) > self.max_devices:
            victim = next(
                (did for did, d in self._devices.items() if did != keep and not d.in_use),
                None,
            )
            if victim is None:
                logger.warning("All %s devices are in use, keeping them over the cap", len(self._devices))
                return
            await self._close(self._devices.pop(victim))

    async def _close(self, device: DeviceSession) -> None:
        aclose = getattr(device.store, "aclose", None)
        if aclose is not None:
            await aclose()
