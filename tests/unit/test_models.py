"""Tests for run, payload and wire models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from loreforge.models import (
    Artifact,
    BriefPayload,
    DraftPayload,
    FactPackPayload,
    PayloadKindMismatchError,
    Proposal,
    RunFlags,
    StageState,
    artifact_from_wire,
    artifact_to_wire,
    create_run,
    normalize_question,
    run_from_wire,
    run_to_wire,
    validate_payload,
)
from loreforge.models.wire import stage_from_wire, stage_to_wire


class TestCreateRun:
    """New runs start queued with every stage idle."""

    def test_defaults(self) -> None:
        run = create_run("npc", "A keeper", ["planner", "retriever"])

        assert run.status == "queued"
        assert run.current_stage == "planner"
        assert run.stage("planner").status == "idle"
        assert run.flags == RunFlags()
        assert not run.is_terminal

    def test_flags_from_dict(self) -> None:
        run = create_run("scene", "Storm", ["planner"], flags={"domain": "writing", "tone": "grim"})

        assert run.flags.domain == "writing"
        assert run.flags.tone == "grim"
        assert run.flags.rule_base == "2024RAW"

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            create_run("poem", "x", ["planner"])  # type: ignore[arg-type]

    def test_untouched_stage_is_idle(self) -> None:
        run = create_run("npc", "x", [])

        assert run.current_stage is None
        assert run.stage("anything") == StageState()


def test_normalize_question() -> None:
    assert normalize_question("  Who   PAYS\tValen? ") == "who pays valen?"
    assert Proposal(question="Who pays Valen?").key == "who pays valen?"


def test_proposal_options_capped() -> None:
    with pytest.raises(ValidationError):
        Proposal(question="Which?", options=[str(i) for i in range(7)])


# --- Payload Tests ---


class TestValidatePayload:
    """Discriminated stage payloads."""

    def test_dict_dispatches_on_kind(self) -> None:
        payload = validate_payload({"kind": "factpack", "facts": [{"id": "a#c1", "text": "x"}]})

        assert isinstance(payload, FactPackPayload)
        assert payload.fact_ids() == {"a#c1"}

    def test_model_accepted(self) -> None:
        brief = BriefPayload(run_kind="npc", deliverable="npc", summary="A keeper")

        assert validate_payload(brief, "brief") == brief

    def test_kind_mismatch(self) -> None:
        with pytest.raises(PayloadKindMismatchError, match="Expected a 'draft' payload, got 'factpack'"):
            validate_payload(FactPackPayload(), "draft")

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValidationError):
            validate_payload({"kind": "poem"})

    def test_draft_requires_canon_update(self) -> None:
        with pytest.raises(ValidationError):
            validate_payload(
                {
                    "kind": "draft",
                    "draft": {"sources_used": [], "assumptions": [], "proposals": [], "canon_update": ""},
                }
            )

    def test_draft_keeps_extra_fields(self) -> None:
        payload = validate_payload(
            {
                "kind": "draft",
                "draft": {
                    "name": "Valen",
                    "sources_used": [],
                    "assumptions": [],
                    "proposals": [],
                    "canon_update": "Adds Valen.",
                },
            }
        )

        assert isinstance(payload, DraftPayload)
        assert payload.draft.model_dump()["name"] == "Valen"


# --- Wire Tests ---


class TestWire:
    """Stored document shape."""

    def test_run_document_uses_stored_field_names(self) -> None:
        run = create_run("npc", "A keeper", ["planner"], run_id="r1")

        doc = run_to_wire(run)

        assert doc["_id"] == "r1"
        assert doc["type"] == "npc"
        assert doc["createdAt"] == run.created_at.isoformat()
        assert doc["stages"]["planner"]["status"] == "idle"

    def test_run_inverse(self) -> None:
        run = create_run(
            "encounter",
            "Ambush",
            ["planner", "creator"],
            flags={"allow_invention": "none"},
            params={"forbidden_inventions": ["deity"]},
        )
        run.stages["planner"] = StageState(status="ok", artifact_id="a1", notes=["n"], started_at=run.created_at)

        assert run_from_wire(run_to_wire(run)) == run

    def test_stage_inverse(self) -> None:
        state = StageState(status="fail", error="boom", cause="ValueError", notes=["x"])

        assert stage_from_wire(stage_to_wire(state)) == state

    def test_artifact_inverse(self) -> None:
        artifact = Artifact(id="a1", run_id="r1", stage="planner", data=BriefPayload(run_kind="npc", deliverable="npc", summary="s"))

        doc = artifact_to_wire(artifact)

        assert doc["_id"] == "a1"
        assert doc["data"]["kind"] == "brief"
        assert artifact_from_wire(doc) == artifact
