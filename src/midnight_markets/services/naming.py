"""Naming/Registration Subsystem.

Binds a name hash to its claimant exactly once. The check and the write
happen under the name's lock in one transaction, so two concurrent claims
on the same hash cannot both succeed. Pricing policy lives in
``name_pricing``; here the price is only recorded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from midnight_markets.domain.enums import EntityType, EventType, OperationName
from midnight_markets.domain.exceptions import AlreadyExistsError, InvalidAmountError
from midnight_markets.domain.fees import validate_ledger_amount
from midnight_markets.domain.models import NameRegistration
from midnight_markets.infrastructure.ledger_store import name_key
from midnight_markets.logging_config import get_logger
from midnight_markets.services.base import LedgerService, OperationOutcome

if TYPE_CHECKING:
    from midnight_markets.schemas.operations import RegisterName

logger = get_logger(__name__)


class NamingService(LedgerService):
    async def register_name(self, request: RegisterName) -> OperationOutcome:
        operation = OperationName.REGISTER_NAME
        async with self._store.transaction(name_key(request.name_hash)) as tx:
            existing = await tx.read(EntityType.NAME, request.name_hash)
            if existing is not None:
                raise AlreadyExistsError("name", request.name_hash)
            if request.price < 0:
                raise InvalidAmountError(f"Name price must not be negative, got {request.price}")
            validate_ledger_amount(request.price, "Name price")

            registration = NameRegistration(
                name_hash=request.name_hash,
                owner_token=request.claimant_token,
                price=request.price,
                registered_at=self._clock(),
            )
            await tx.write(EntityType.NAME, registration.name_hash, registration)
            event = self._record(
                tx,
                operation,
                request.claimant_token,
                event_type=EventType.NAME_REGISTERED,
                data={"nameHash": registration.name_hash, "price": registration.price},
            )

        logger.info(
            "name.registered",
            name_hash=registration.name_hash,
            owner_token=registration.owner_token,
            price=registration.price,
        )
        return OperationOutcome(
            message="Name registered",
            data={
                "nameHash": registration.name_hash,
                "ownerToken": registration.owner_token,
                "price": registration.price,
            },
            events=(event,),
        )
