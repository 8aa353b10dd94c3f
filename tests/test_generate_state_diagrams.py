"""
Tests for the Mermaid state diagram generator script.
"""
import sys
from pathlib import Path

import pytest

# make scripts/ importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.generate_state_diagrams import (
    END_MARKER,
    HANDOVER_LABELS,
    PROMOTION_LABELS,
    START_MARKER,
    check_document,
    format_diagrams_as_markdown,
    generate_all_diagrams,
    generate_mermaid_from_transitions,
    main,
    update_document,
)
from reach.db.models.handover import HandoverStatus
from reach.db.models.tracking_link import PromotionStatus
from reach.domain.transitions import HANDOVER_TRANSITIONS, PROMOTION_TRANSITIONS


class TestPromotionDiagram:
    @pytest.mark.unit
    def test_contains_all_transitions(self) -> None:
        mermaid = generate_mermaid_from_transitions(
            PROMOTION_TRANSITIONS, PROMOTION_LABELS, PromotionStatus.ACTIVE
        )
        for source, targets in PROMOTION_TRANSITIONS.items():
            for target in targets:
                assert f"{source.value} --> {target.value}" in mermaid

    @pytest.mark.unit
    def test_stopped_is_terminal(self) -> None:
        mermaid = generate_mermaid_from_transitions(
            PROMOTION_TRANSITIONS, PROMOTION_LABELS, PromotionStatus.ACTIVE
        )
        assert mermaid.startswith("stateDiagram-v2")
        assert "[*] --> active" in mermaid
        assert "stopped --> [*]" in mermaid
        assert "stopped : Stopped" in mermaid

    @pytest.mark.unit
    def test_every_status_has_label(self) -> None:
        assert set(PROMOTION_LABELS) == {status.value for status in PromotionStatus}
        assert set(HANDOVER_LABELS) == {status.value for status in HandoverStatus}


class TestHandoverDiagram:
    @pytest.mark.unit
    def test_linear_flow(self) -> None:
        mermaid = generate_mermaid_from_transitions(
            HANDOVER_TRANSITIONS, HANDOVER_LABELS, HandoverStatus.PAYMENT_CONFIRMED
        )
        assert "[*] --> payment_confirmed" in mermaid
        assert "reach_signed --> buyer_signed" in mermaid
        assert "keys_delivered --> completed" in mermaid
        assert "completed --> [*]" in mermaid

    @pytest.mark.unit
    def test_unlabelled_status_falls_back_to_value(self) -> None:
        mermaid = generate_mermaid_from_transitions(
            HANDOVER_TRANSITIONS, {}, HandoverStatus.PAYMENT_CONFIRMED
        )
        assert "docs_verified : docs_verified" in mermaid


class TestMarkdown:
    @pytest.mark.unit
    def test_all_diagrams_rendered(self) -> None:
        diagrams = generate_all_diagrams()
        assert list(diagrams) == ["Promotion (PromotionStatus)", "Handover (HandoverStatus)"]

        markdown = format_diagrams_as_markdown(diagrams)
        assert markdown.count("```mermaid") == 2
        assert "#### Handover (HandoverStatus)" in markdown


class TestDocumentSync:
    @pytest.mark.unit
    def test_update_appends_section_then_checks_clean(self, tmp_path: Path) -> None:
        doc = tmp_path / "STATES.md"
        doc.write_text("# Lifecycles\n", encoding="utf-8")
        markdown = format_diagrams_as_markdown(generate_all_diagrams())

        update_document(doc, markdown)

        content = doc.read_text(encoding="utf-8")
        assert content.startswith("# Lifecycles\n\n" + START_MARKER)
        assert content.rstrip().endswith(END_MARKER)
        assert check_document(doc, markdown) is True

    @pytest.mark.unit
    def test_update_replaces_existing_section(self, tmp_path: Path) -> None:
        doc = tmp_path / "STATES.md"
        doc.write_text(f"intro\n{START_MARKER}\nstale\n{END_MARKER}\noutro\n", encoding="utf-8")

        update_document(doc, "fresh")

        content = doc.read_text(encoding="utf-8")
        assert "stale" not in content
        assert "fresh" in content
        assert content.startswith("intro\n") and content.endswith("outro\n")

    @pytest.mark.unit
    def test_check_detects_drift(self, tmp_path: Path) -> None:
        doc = tmp_path / "STATES.md"
        update_document(doc, "old diagrams")

        assert check_document(doc, format_diagrams_as_markdown(generate_all_diagrams())) is False

    @pytest.mark.unit
    def test_check_missing_file_or_section(self, tmp_path: Path) -> None:
        missing = tmp_path / "missing.md"
        plain = tmp_path / "plain.md"
        plain.write_text("no markers here\n", encoding="utf-8")

        assert check_document(missing, "x") is False
        assert check_document(plain, "x") is False


class TestMain:
    @pytest.mark.unit
    def test_check_exit_codes(self, tmp_path: Path) -> None:
        doc = tmp_path / "STATES.md"
        main(["--update", str(doc)])

        with pytest.raises(SystemExit) as exc_info:
            main(["--check", str(doc)])
        assert exc_info.value.code == 0

        doc.write_text(doc.read_text(encoding="utf-8").replace("Paused", "On hold"), encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["--check", str(doc)])
        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_prints_by_default(self, capsys) -> None:
        main([])
        assert "stateDiagram-v2" in capsys.readouterr().out
