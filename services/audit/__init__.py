import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from api.models import AuditLog


class AuditTrail:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        actor_id: uuid.UUID,
        action: str,
        entity: str,
        entity_id: uuid.UUID | None = None,
        payload: dict | None = None,
    ) -> AuditLog:
        entry = AuditLog(actor_id=actor_id, action=action, entity=entity, entity_id=entity_id, payload_json=payload)
        self.session.add(entry)
        await self.session.flush()
        logging.info(f"Audit: {actor_id} {action} {entity} {entity_id}")
        return entry
