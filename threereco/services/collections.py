"""Material line items on collections.

A collection's materials are snapshots of the catalogue entry taken when the
material is weighed in, so later catalogue edits do not rewrite history.
Adding or removing a line item is audited as an UPDATE of the collection.
"""

from __future__ import annotations

import logging
from uuid import UUID

from threereco.core.errors import NotFoundError
from threereco.domain.models import Collection, CollectionMaterial
from threereco.persistence.filters import RowFilter, TrueFilter
from threereco.persistence.transaction import AuditedTransaction
from threereco.services import entities
from threereco.services.audit import OPERATION_UPDATE, record_mutation
from threereco.services.tables import COLLECTIONS, MATERIALS


logger = logging.getLogger(__name__)


def _audit_collection(tx: AuditedTransaction, collection: Collection) -> None:
    record_mutation(
        tx,
        table_name=COLLECTIONS.table_name,
        operation=OPERATION_UPDATE,
        row=collection,
        associations=COLLECTIONS.associations,
    )


async def add_material(
    tx: AuditedTransaction,
    collection_id: UUID,
    material_id: UUID,
    *,
    weight: float,
    value: float,
    policies: RowFilter = TrueFilter(),
) -> Collection:
    collection = await entities.get_row(tx.session, COLLECTIONS, collection_id, policies=policies)
    material = await entities.get_row(tx.session, MATERIALS, material_id)
    collection.materials.append(
        CollectionMaterial(
            collection_id=collection.id,
            material_id=material.id,
            name=material.name,
            gw_code=material.gw_code,
            carbon_factor=material.carbon_factor,
            weight=weight,
            value=value,
            modified_by_id=tx.audit_user_id,
        )
    )
    collection.modified_by_id = tx.audit_user_id
    await tx.session.flush()
    _audit_collection(tx, collection)
    logger.info("collection_material_added collection_id=%s material_id=%s", collection.id, material.id)
    return collection


async def remove_material(
    tx: AuditedTransaction,
    collection_id: UUID,
    line_id: UUID,
    *,
    policies: RowFilter = TrueFilter(),
) -> Collection:
    collection = await entities.get_row(tx.session, COLLECTIONS, collection_id, policies=policies)
    remaining = [line for line in collection.materials if line.id != line_id]
    if len(remaining) == len(collection.materials):
        raise NotFoundError()
    # delete-orphan removes the detached line item on flush.
    collection.materials = remaining
    collection.modified_by_id = tx.audit_user_id
    await tx.session.flush()
    _audit_collection(tx, collection)
    logger.info("collection_material_removed collection_id=%s line_id=%s", collection.id, line_id)
    return collection
