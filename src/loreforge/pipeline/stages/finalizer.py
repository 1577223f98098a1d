"""Finalizer stage: continuity ledger and canon delta for the styled draft."""

from __future__ import annotations

import json
import math
import re
from typing import TYPE_CHECKING, Any

from loreforge.guards.records import as_records
from loreforge.models.artifacts import (
    CanonDelta,
    ContinuityLedger,
    DraftPayload,
    FactPackPayload,
    FinalPayload,
)
from loreforge.pipeline.stages.base import StageOutput, require_payload

if TYPE_CHECKING:
    from loreforge.models.artifacts import Artifact
    from loreforge.pipeline.stages.base import StageContext

CHUNK_CHARS = 500
NO_CANON_CHANGES = "No canon changes"

_NON_SLUG = re.compile(r"[^a-z0-9]+")

# Roster fields whose records name entities, with the entity prefix to use
ROSTER_FIELDS: dict[str, str] = {
    "participants": "npc",
    "combatants": "npc",
    "key_npcs": "npc",
    "key_locations": "location",
}


def slugify(text: str) -> str:
    return _NON_SLUG.sub("_", text.lower()).strip("_")


def mentioned_entities(draft: dict[str, Any], kind: str) -> list[str]:
    """Entity ids a draft introduces or refers to, in first-seen order."""
    found: dict[str, None] = {}
    for field_name, prefix in ROSTER_FIELDS.items():
        for record in as_records(draft.get(field_name)):
            name = record.get("name")
            if isinstance(name, str) and slugify(name):
                found[f"{prefix}.{slugify(name)}"] = None
    name = draft.get("name")
    if isinstance(name, str) and slugify(name):
        found[f"{kind}.{slugify(name)}"] = None
    return list(found)


async def run_finalizer(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
    styled = require_payload(ctx, inputs, "stylist", DraftPayload)
    creator = require_payload(ctx, inputs, "creator", DraftPayload)
    factpack = require_payload(ctx, inputs, "retriever", FactPackPayload)

    draft = styled.draft
    ledger = ContinuityLedger(
        facts_relied_on=list(draft.sources_used),
        assumptions=list(draft.assumptions),
        proposals=list(draft.proposals),
    )

    data = draft.model_dump(mode="json")
    canon_entities = set(factpack.entities)
    delta = CanonDelta(
        summary=draft.canon_update.strip() or NO_CANON_CHANGES,
        new_entities=[e for e in mentioned_entities(data, ctx.run.kind) if e not in canon_entities],
        updated_entities=list(factpack.entities),
        new_chunks=math.ceil(len(json.dumps(data)) / CHUNK_CHARS),
    )

    advisories = list(dict.fromkeys([*creator.warnings, *styled.warnings]))
    payload = FinalPayload(draft=draft, ledger=ledger, canon_delta=delta, advisories=advisories)
    notes = [
        f"Continuity ledger: {len(ledger.facts_relied_on)} sources, "
        f"{len(ledger.assumptions)} assumptions",
        f"Canon delta: {delta.summary}",
    ]
    if delta.new_entities:
        notes.append(f"New entities: {', '.join(delta.new_entities)}")
    return StageOutput.ok(payload, notes)
